from typing import Optional

from pydantic import BaseModel, Field

from ..models.shift import CamelModel
from ..models.user import User


class UserLogin(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class TokenLogin(CamelModel):
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None


class SessionResponse(CamelModel):
    state: str
    user: Optional[User] = None
    dashboard_path: Optional[str] = None

    @classmethod
    def from_session(cls, session) -> "SessionResponse":
        user = session.user if session.is_authenticated else None
        return cls(
            state=session.state.value,
            user=user,
            dashboard_path=user.role.dashboard_path if user else None,
        )
