"""Doctor-shift cancellation and restore workflows.

Both are small state machines driven by operator actions. Remote failures
are caught here and turned into a ``FAILED`` state with a displayable
message; only local rule violations (missing reason, illegal transition,
action while a request is pending) are raised to the caller. The registry is
updated only after the backend confirms a change.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Optional, TypeVar
import logging

from .preview import ImpactPreviewService
from .registry import ShiftRegistry
from .shift_api import ShiftApi
from ..core import messages
from ..core.config import settings
from ..core.errors import (
    AssignmentNotFoundError, CommitError, ConsoleError, InvalidTransitionError,
    PreviewFetchError, ReasonRequiredError, RequestTimeoutError, RestoreError,
    WorkflowBusyError,
)
from ..models.shift import (
    AssignmentStatus, CancellationResult, DoctorShiftAssignment, ImpactPreview,
)
from ..schemas.schedule import CancellationView, RestoreView

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationState(str, Enum):
    IDLE = "idle"
    PREVIEW_LOADING = "preview_loading"
    PREVIEW_READY = "preview_ready"
    REASON_ENTRY = "reason_entry"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RestoreState(str, Enum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FailedStage(str, Enum):
    PREVIEW = "preview"
    COMMIT = "commit"


async def _bounded(call: Awaitable[T], timeout: float) -> T:
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        if isinstance(e, ConsoleError):
            raise
        raise RequestTimeoutError() from e


def _lookup(registry: ShiftRegistry, assignment_id: int) -> DoctorShiftAssignment:
    assignment = registry.get(assignment_id)
    if assignment is None:
        raise AssignmentNotFoundError()
    return assignment


def compose_cancel_message(result: CancellationResult) -> str:
    message = messages.CANCEL_SUCCEEDED
    if result.total_appointments > 0:
        message += messages.CANCEL_PROCESSED.format(
            rescheduled=result.rescheduled_count,
            total=result.total_appointments,
        )
    return message


class CancellationWorkflow:
    """Select → preview → reason → commit for one doctor shift."""

    IN_FLIGHT = (CancellationState.PREVIEW_LOADING, CancellationState.COMMITTING)

    def __init__(
        self,
        registry: ShiftRegistry,
        previews: ImpactPreviewService,
        api: ShiftApi,
        timeout: float = settings.WORKFLOW_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.previews = previews
        self.api = api
        self.timeout = timeout
        self._reset()

    def _reset(self) -> None:
        self.state = CancellationState.IDLE
        self.assignment_id: Optional[int] = None
        self.preview: Optional[ImpactPreview] = None
        self.reason = ""
        self.result: Optional[CancellationResult] = None
        self.error: Optional[ConsoleError] = None
        self.failed_stage: Optional[FailedStage] = None
        self.message: Optional[str] = None
        self.info_message: Optional[str] = None
        self.validation_message: Optional[str] = None
        self._replacement_doctor_id: Optional[int] = None

    @property
    def in_flight(self) -> bool:
        return self.state in self.IN_FLIGHT

    def _ensure_settled(self) -> None:
        if self.in_flight:
            raise WorkflowBusyError()

    def _fail(self, stage: FailedStage, error: ConsoleError) -> None:
        self.state = CancellationState.FAILED
        self.failed_stage = stage
        self.error = error
        self.message = error.message
        logger.warning(
            f"Cancellation of doctor shift {self.assignment_id} failed "
            f"during {stage.value}: {error.kind}: {error.message}"
        )

    async def select(self, assignment_id: int) -> CancellationState:
        """Open the decision for ``assignment_id`` and load its impact preview."""
        self._ensure_settled()
        if self.state != CancellationState.IDLE:
            raise InvalidTransitionError()

        assignment = _lookup(self.registry, assignment_id)
        if not assignment.is_active:
            raise InvalidTransitionError(messages.ONLY_ACTIVE_CANCELLABLE)

        self._reset()
        self.assignment_id = assignment_id
        return await self._load_preview()

    async def _load_preview(self) -> CancellationState:
        self.state = CancellationState.PREVIEW_LOADING
        self.error = None
        self.failed_stage = None
        self.message = None

        try:
            preview = await _bounded(self.previews.fetch_preview(self.assignment_id), self.timeout)
        except ConsoleError as e:
            self._fail(FailedStage.PREVIEW, e)
            return self.state
        except BaseException:
            self._fail(FailedStage.PREVIEW, PreviewFetchError())
            raise

        self.preview = preview
        self._replacement_doctor_id = preview.replacement_doctor_id
        self.state = CancellationState.PREVIEW_READY
        return self.state

    def enter_reason(self, text: str) -> CancellationState:
        self._ensure_settled()
        allowed = (
            self.state in (CancellationState.PREVIEW_READY, CancellationState.REASON_ENTRY)
            or (self.state == CancellationState.FAILED and self.failed_stage == FailedStage.COMMIT)
        )
        if not allowed:
            raise InvalidTransitionError()

        self.reason = text or ""
        self.validation_message = None
        self.error = None
        self.failed_stage = None
        self.message = None
        self.state = CancellationState.REASON_ENTRY
        return self.state

    async def confirm(self) -> CancellationState:
        """Commit the cancellation; the reason must contain non-blank text."""
        self._ensure_settled()
        if self.state != CancellationState.REASON_ENTRY:
            raise InvalidTransitionError()

        reason = self.reason.strip()
        if not reason:
            self.validation_message = messages.REASON_REQUIRED
            raise ReasonRequiredError()

        self.validation_message = None
        self.state = CancellationState.COMMITTING
        try:
            result = await _bounded(
                self.api.cancel_and_reschedule(
                    self.assignment_id, reason, self._replacement_doctor_id
                ),
                self.timeout,
            )
        except ConsoleError as e:
            self.preview = None
            self._fail(FailedStage.COMMIT, e)
            return self.state
        except BaseException:
            self._fail(FailedStage.COMMIT, CommitError())
            raise

        self.registry.apply_status_change(self.assignment_id, AssignmentStatus.CANCELLED)
        self.preview = None
        self.result = result
        self.message = compose_cancel_message(result)
        if result.failed_count > 0:
            self.info_message = messages.CANCEL_PARTIAL.format(
                total=result.total_appointments,
                rescheduled=result.rescheduled_count,
                failed=result.failed_count,
            )
        self.state = CancellationState.SUCCEEDED
        logger.info(
            f"Doctor shift {self.assignment_id} cancelled: "
            f"{result.rescheduled_count}/{result.total_appointments} appointments rescheduled"
        )
        return self.state

    async def retry(self) -> CancellationState:
        """Retry whatever failed: refetch the preview, or go back to the reason."""
        self._ensure_settled()
        if self.state != CancellationState.FAILED:
            raise InvalidTransitionError()

        if self.failed_stage == FailedStage.PREVIEW:
            return await self._load_preview()
        return self.enter_reason(self.reason)

    def abandon(self) -> CancellationState:
        self._ensure_settled()
        self._reset()
        return self.state

    def view(self) -> CancellationView:
        return CancellationView(
            state=self.state.value,
            assignment_id=self.assignment_id,
            preview=self.preview,
            reason=self.reason,
            result=self.result,
            failed_stage=self.failed_stage.value if self.failed_stage else None,
            error=self.error.kind if self.error else None,
            message=self.message,
            info_message=self.info_message,
            validation_message=self.validation_message,
            busy=self.in_flight,
            can_confirm=self.state == CancellationState.REASON_ENTRY and bool(self.reason.strip()),
        )


class RestoreWorkflow:
    """Confirm → commit for reactivating one cancelled doctor shift."""

    def __init__(
        self,
        registry: ShiftRegistry,
        api: ShiftApi,
        timeout: float = settings.WORKFLOW_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.api = api
        self.timeout = timeout
        self._reset()

    def _reset(self) -> None:
        self.state = RestoreState.IDLE
        self.assignment_id: Optional[int] = None
        self.error: Optional[ConsoleError] = None
        self.message: Optional[str] = None

    @property
    def in_flight(self) -> bool:
        return self.state == RestoreState.COMMITTING

    def open(self, assignment_id: int) -> RestoreState:
        if self.in_flight:
            raise WorkflowBusyError()
        if self.state != RestoreState.IDLE:
            raise InvalidTransitionError()

        assignment = _lookup(self.registry, assignment_id)
        if not assignment.is_cancelled:
            raise InvalidTransitionError(messages.ONLY_CANCELLED_RESTORABLE)

        self.assignment_id = assignment_id
        self.state = RestoreState.CONFIRMING
        return self.state

    async def confirm(self) -> RestoreState:
        if self.in_flight:
            raise WorkflowBusyError()
        if self.state not in (RestoreState.CONFIRMING, RestoreState.FAILED):
            raise InvalidTransitionError()

        self.state = RestoreState.COMMITTING
        self.error = None
        self.message = None
        try:
            await _bounded(self.api.restore_shift(self.assignment_id), self.timeout)
        except ConsoleError as e:
            self.state = RestoreState.FAILED
            self.error = e
            self.message = e.message
            logger.warning(f"Restore of doctor shift {self.assignment_id} failed: {e.kind}: {e.message}")
            return self.state
        except BaseException:
            self.state = RestoreState.FAILED
            self.error = RestoreError()
            self.message = self.error.message
            raise

        self.registry.apply_status_change(self.assignment_id, AssignmentStatus.ACTIVE)
        self.message = messages.RESTORE_SUCCEEDED
        self.state = RestoreState.SUCCEEDED
        logger.info(f"Doctor shift {self.assignment_id} restored")
        return self.state

    def abandon(self) -> RestoreState:
        if self.in_flight:
            raise WorkflowBusyError()
        self._reset()
        return self.state

    def view(self) -> RestoreView:
        return RestoreView(
            state=self.state.value,
            assignment_id=self.assignment_id,
            error=self.error.kind if self.error else None,
            message=self.message,
            busy=self.in_flight,
        )
