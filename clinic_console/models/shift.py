from datetime import date
from typing import Optional
import enum

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts the backend's camelCase keys as well as field names."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class AssignmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"
    REPLACED = "REPLACED"


class Shift(CamelModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    start_time: str
    end_time: str
    description: Optional[str] = None

    @property
    def time_range(self) -> str:
        return f"{self.start_time} - {self.end_time}"

    def __repr__(self):
        return f"<Shift(id={self.id}, name='{self.name}', {self.time_range})>"


class DoctorSummary(CamelModel):
    id: int
    doctor_code: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    specialty: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "DoctorSummary":
        """Flatten the backend's nested ``doctor.user`` / ``doctor.specialty``."""
        user = payload.get("user") or {}
        specialty = payload.get("specialty")
        if isinstance(specialty, dict):
            specialty = specialty.get("name")
        return cls(
            id=payload["id"],
            doctor_code=payload.get("doctorCode"),
            full_name=payload.get("fullName") or user.get("fullName"),
            email=payload.get("email") or user.get("email"),
            specialty=specialty,
        )


class DoctorShiftAssignment(CamelModel):
    id: int
    doctor_id: int
    shift_id: int
    work_date: date
    status: AssignmentStatus = AssignmentStatus.ACTIVE
    replacement_doctor_id: Optional[int] = None
    cancel_reason: Optional[str] = None
    doctor: Optional[DoctorSummary] = None
    shift: Optional[Shift] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "DoctorShiftAssignment":
        data = dict(payload)
        # Backend sends ISO datetimes for workDate on some endpoints
        work_date = data.get("workDate")
        if isinstance(work_date, str) and "T" in work_date:
            data["workDate"] = work_date.split("T", 1)[0]
        if isinstance(data.get("doctor"), dict):
            data["doctor"] = DoctorSummary.from_payload(data["doctor"])
        if "shiftId" not in data and isinstance(data.get("shift"), dict):
            data["shiftId"] = data["shift"]["id"]
        return cls.model_validate(data)

    @property
    def is_active(self) -> bool:
        return self.status == AssignmentStatus.ACTIVE

    @property
    def is_cancelled(self) -> bool:
        return self.status == AssignmentStatus.CANCELLED

    def __repr__(self):
        return (
            f"<DoctorShiftAssignment(id={self.id}, doctor_id={self.doctor_id}, "
            f"shift_id={self.shift_id}, date='{self.work_date}', status={self.status.value})>"
        )


class BackendCounts(CamelModel):
    """Backend answers may carry null for any field; null means the default."""

    @field_validator("*", mode="before")
    @classmethod
    def null_as_default(cls, value, info: ValidationInfo):
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class ImpactPreview(BackendCounts):
    affected_appointments: int = 0
    has_replacement_doctor: bool = False
    replacement_doctor_id: Optional[int] = None
    can_auto_reschedule: bool = False
    warning: Optional[str] = None


class CancellationResult(BackendCounts):
    total_appointments: int = 0
    rescheduled_count: int = 0
    failed_count: int = 0


class ShiftCount(CamelModel):
    active: int = 0
    cancelled: int = 0
    replaced: int = 0
    total: int = 0
