from typing import Dict, List
import logging

from .preview import ImpactPreviewService
from .registry import ShiftRegistry
from .shift_api import ShiftApi
from .workflows import (
    CancellationState, CancellationWorkflow, RestoreState, RestoreWorkflow,
)
from ..core.config import settings
from ..core.errors import ConsoleError, WorkflowBusyError

logger = logging.getLogger(__name__)

class WorkflowBoard:
    """One cancellation and one restore workflow per doctor shift.

    Starting a flow while the other flow of the same shift is waiting on the
    backend is refused. This mirrors the disabled buttons of the schedule
    page and is best effort only; the backend stays the authority.
    """

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
        self._cancellations: Dict[int, CancellationWorkflow] = {}
        self._restorations: Dict[int, RestoreWorkflow] = {}

    def cancellation(self, assignment_id: int) -> CancellationWorkflow:
        """Started workflow of ``assignment_id``, or a fresh idle one.

        Only ``start_cancellation`` keeps a workflow on the board.
        """
        workflow = self._cancellations.get(assignment_id)
        if workflow is None:
            workflow = CancellationWorkflow(self.registry, self.previews, self.api, self.timeout)
        return workflow

    def restoration(self, assignment_id: int) -> RestoreWorkflow:
        workflow = self._restorations.get(assignment_id)
        if workflow is None:
            workflow = RestoreWorkflow(self.registry, self.api, self.timeout)
        return workflow

    def is_busy(self, assignment_id: int) -> bool:
        cancellation = self._cancellations.get(assignment_id)
        restoration = self._restorations.get(assignment_id)
        return bool(
            (cancellation and cancellation.in_flight)
            or (restoration and restoration.in_flight)
        )

    def in_flight(self) -> List[int]:
        ids = set(self._cancellations) | set(self._restorations)
        return sorted(i for i in ids if self.is_busy(i))

    def __len__(self) -> int:
        return len(self._cancellations) + len(self._restorations)

    async def start_cancellation(self, assignment_id: int) -> CancellationWorkflow:
        if self.is_busy(assignment_id):
            raise WorkflowBusyError()

        workflow = self.cancellation(assignment_id)
        if workflow.state == CancellationState.SUCCEEDED:
            workflow.abandon()

        self._cancellations[assignment_id] = workflow
        try:
            await workflow.select(assignment_id)
        except ConsoleError:
            if workflow.state == CancellationState.IDLE:
                self._cancellations.pop(assignment_id, None)
            raise
        return workflow

    def open_restoration(self, assignment_id: int) -> RestoreWorkflow:
        if self.is_busy(assignment_id):
            raise WorkflowBusyError()

        workflow = self.restoration(assignment_id)
        if workflow.state == RestoreState.SUCCEEDED:
            workflow.abandon()

        workflow.open(assignment_id)
        self._restorations[assignment_id] = workflow
        return workflow

    def discard_settled(self) -> None:
        """Forget every workflow that is not waiting on the backend.

        Called after a full registry reload, when open dialogs refer to
        data that has just been replaced.
        """
        for store in (self._cancellations, self._restorations):
            for assignment_id in [i for i, wf in store.items() if not wf.in_flight]:
                del store[assignment_id]
        logger.info(f"Workflow board reset, {len(self.in_flight())} flows still in flight")
