from typing import Any, Dict, Optional

from .shift import CamelModel
from ..core.security import Role, normalize_role

class User(CamelModel):
    id: int
    email: str = ""
    full_name: str = ""
    role: Role = Role.PATIENT
    doctor_id: Optional[int] = None
    patient_id: Optional[int] = None
    avatar_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "User":
        """Build a user from a login/refresh/profile payload.

        The backend reports the role as ``roleId`` (int), ``role`` (name or
        numeric string) or both.
        """
        return cls(
            id=payload["id"],
            email=payload.get("email") or "",
            full_name=payload.get("fullName") or "",
            role=normalize_role(payload.get("role"), payload.get("roleId")),
            doctor_id=payload.get("doctorId"),
            patient_id=payload.get("patientId"),
            avatar_url=payload.get("avatarUrl"),
        )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role.value}')>"
