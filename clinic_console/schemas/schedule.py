from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.shift import CamelModel, CancellationResult, ImpactPreview


class ReasonRequest(BaseModel):
    reason: str = Field(default="", max_length=1000)


class CancellationView(CamelModel):
    state: str
    assignment_id: Optional[int] = None
    preview: Optional[ImpactPreview] = None
    reason: str = ""
    result: Optional[CancellationResult] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    info_message: Optional[str] = None
    validation_message: Optional[str] = None
    busy: bool = False
    can_confirm: bool = False


class RestoreView(CamelModel):
    state: str
    assignment_id: Optional[int] = None
    error: Optional[str] = None
    message: Optional[str] = None
    busy: bool = False


class InFlightResponse(CamelModel):
    assignment_ids: List[int] = []
