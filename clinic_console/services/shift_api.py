from typing import Any, Callable, List, Optional, TypeVar
import logging

from pydantic import ValidationError

from ..core.errors import (
    CommitError, ConsoleError, FetchError, PreviewFetchError,
    RestoreError, wrap_remote_error,
)
from ..core.http import BackendClient
from ..models.shift import (
    CancellationResult, DoctorShiftAssignment, ImpactPreview, Shift,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

def _parse(parse: Callable[[Any], T], payload: Any, error_cls: type) -> T:
    """Validate one backend payload; a malformed one fails the operation."""
    try:
        return parse(payload)
    except (ValidationError, KeyError, TypeError) as e:
        logger.warning(f"Malformed payload for {parse.__qualname__} from backend: {e}")
        raise error_cls() from e

class ShiftApi:
    """Remote doctor-shift operations.

    Each call re-types backend failures as the error of its own operation so
    the caller can tell a failed list from a failed commit.
    """

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def list_shifts(self) -> List[Shift]:
        try:
            body = await self.backend.get("/shifts")
        except ConsoleError as e:
            raise wrap_remote_error(e, FetchError) from e
        return [_parse(Shift.model_validate, item, FetchError) for item in body.get("data") or []]

    async def list_doctor_shifts(self) -> List[DoctorShiftAssignment]:
        try:
            body = await self.backend.get("/doctor-shifts")
        except ConsoleError as e:
            raise wrap_remote_error(e, FetchError) from e
        return [_parse(DoctorShiftAssignment.from_payload, item, FetchError) for item in body.get("data") or []]

    async def preview_cancellation(self, assignment_id: int) -> ImpactPreview:
        try:
            body = await self.backend.get(f"/doctor-shifts/{assignment_id}/reschedule-preview")
        except ConsoleError as e:
            raise wrap_remote_error(e, PreviewFetchError) from e
        return _parse(ImpactPreview.model_validate, body.get("data") or {}, PreviewFetchError)

    async def cancel_and_reschedule(
        self,
        assignment_id: int,
        reason: str,
        replacement_doctor_id: Optional[int] = None,
    ) -> CancellationResult:
        payload = {"cancelReason": reason}
        if replacement_doctor_id is not None:
            payload["replacementDoctorId"] = replacement_doctor_id

        try:
            body = await self.backend.post(
                f"/doctor-shifts/{assignment_id}/cancel-and-reschedule", json=payload
            )
        except ConsoleError as e:
            raise wrap_remote_error(e, CommitError) from e
        return _parse(CancellationResult.model_validate, body.get("data") or {}, CommitError)

    async def restore_shift(self, assignment_id: int) -> None:
        try:
            await self.backend.post(f"/doctor-shifts/{assignment_id}/restore")
        except ConsoleError as e:
            raise wrap_remote_error(e, RestoreError) from e
