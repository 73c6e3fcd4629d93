from fastapi import APIRouter, Depends

from ...api.deps import get_current_user, get_session
from ...models.user import User
from ...schemas.auth import SessionResponse, TokenLogin, UserLogin
from ...services.session import Session

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/login", response_model=SessionResponse)
async def login(
    login_data: UserLogin,
    session: Session = Depends(get_session),
):
    """Sign the operator in against the clinic backend."""
    await session.login(login_data.email, login_data.password)
    return SessionResponse.from_session(session)

@router.post("/token-login", response_model=SessionResponse)
async def token_login(
    token_data: TokenLogin,
    session: Session = Depends(get_session),
):
    """Adopt tokens issued by an OAuth callback."""
    await session.login_with_token(token_data.access_token, token_data.refresh_token)
    return SessionResponse.from_session(session)

@router.post("/restore", response_model=SessionResponse)
async def restore(session: Session = Depends(get_session)):
    """Resume the session from the stored refresh token, if any."""
    await session.restore()
    return SessionResponse.from_session(session)

@router.post("/logout")
async def logout(session: Session = Depends(get_session)):
    """Sign out and forget local tokens."""
    success = await session.logout()

    return {"message": "Successfully logged out" if success else "Logout completed"}

@router.get("/session", response_model=SessionResponse)
async def get_session_state(session: Session = Depends(get_session)):
    """Current session state, without requiring authentication."""
    return SessionResponse.from_session(session)

@router.get("/me", response_model=User)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return current_user
