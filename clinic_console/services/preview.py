import logging

from .shift_api import ShiftApi
from ..models.shift import ImpactPreview

logger = logging.getLogger(__name__)

class ImpactPreviewService:
    """Fetches the server-computed impact of cancelling a doctor shift.

    Nothing is cached: appointment counts can change between two attempts.
    """

    def __init__(self, api: ShiftApi):
        self.api = api

    async def fetch_preview(self, assignment_id: int) -> ImpactPreview:
        preview = await self.api.preview_cancellation(assignment_id)
        logger.info(
            f"Preview for doctor shift {assignment_id}: "
            f"{preview.affected_appointments} affected appointments, "
            f"replacement={preview.replacement_doctor_id}"
        )
        return preview
