from datetime import datetime, timezone
from typing import Optional, Union
from jose import JWTError, jwt
from fastapi import HTTPException, status
from pydantic import BaseModel
from enum import Enum
import logging

from .config import settings

logger = logging.getLogger(__name__)

class Role(str, Enum):
    ADMIN = "admin"
    RECEPTIONIST = "receptionist"
    DOCTOR = "doctor"
    PATIENT = "patient"

    @property
    def dashboard_path(self) -> str:
        return _DASHBOARD_PATHS[self]

_DASHBOARD_PATHS = {
    Role.ADMIN: "/admin/dashboard",
    Role.RECEPTIONIST: "/receptionist/dashboard",
    Role.DOCTOR: "/doctor/dashboard",
    Role.PATIENT: "/patient/dashboard",
}

# Backend role ids: 1=Admin, 2=Receptionist, 3=Patient, 4=Doctor
_ROLE_IDS = {
    1: Role.ADMIN,
    2: Role.RECEPTIONIST,
    3: Role.PATIENT,
    4: Role.DOCTOR,
}

_ROLE_ALIASES = {
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
    "receptionist": Role.RECEPTIONIST,
    "staff": Role.RECEPTIONIST,
    "doctor": Role.DOCTOR,
    "patient": Role.PATIENT,
}

def normalize_role(
    role: Optional[Union[str, int, Role]] = None,
    role_id: Optional[Union[int, str]] = None,
) -> Role:
    """Map any backend role representation onto a Role.

    ``role_id`` wins over ``role`` when both are given. Missing or
    unrecognized values fall back to PATIENT.
    """
    unrecognized = []
    for value in (role_id, role):
        if value is None or value == "":
            continue
        if isinstance(value, Role):
            return value
        text = str(value).strip().lower()
        if text.isdigit() and int(text) in _ROLE_IDS:
            return _ROLE_IDS[int(text)]
        if text in _ROLE_ALIASES:
            return _ROLE_ALIASES[text]
        unrecognized.append(value)

    if unrecognized:
        logger.warning(f"Unrecognized role value(s) {unrecognized!r}, defaulting to patient")
    return Role.PATIENT

class TokenClaims(BaseModel):
    sub: Optional[Union[int, str]] = None
    email: Optional[str] = None
    role_id: Optional[int] = None
    exp: Optional[int] = None

# JWT utilities
def read_token_claims(token: str) -> Optional[TokenClaims]:
    """Decode JWT claims without verifying the signature.

    The backend owns the signing key; the console only reads the claims to
    decide when to refresh.
    """
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError:
        return None

    return TokenClaims(
        sub=payload.get("sub") or payload.get("userId"),
        email=payload.get("email"),
        role_id=payload.get("roleId"),
        exp=payload.get("exp"),
    )

def token_expired(token: str, leeway: Optional[int] = None, now: Optional[datetime] = None) -> bool:
    """True when the token's ``exp`` is in the past (minus leeway).

    Tokens without a readable ``exp`` are treated as valid and left for the
    backend to reject.
    """
    claims = read_token_claims(token)
    if not claims or claims.exp is None:
        return False

    if leeway is None:
        leeway = settings.ACCESS_TOKEN_LEEWAY_SECONDS
    current = now or datetime.now(timezone.utc)
    return claims.exp - leeway <= current.timestamp()

# Security exceptions
class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
