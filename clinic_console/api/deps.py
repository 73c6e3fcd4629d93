from fastapi import Depends, Request
from typing import List, Optional

from ..core.security import AuthorizationError, Role
from ..models.user import User
from ..services.board import WorkflowBoard
from ..services.registry import ShiftRegistry
from ..services.session import Session

def get_session(request: Request) -> Session:
    """Operator session held by the running console."""
    return request.app.state.session

def get_registry(request: Request) -> ShiftRegistry:
    return request.app.state.registry

def get_board(request: Request) -> WorkflowBoard:
    return request.app.state.board

async def get_current_user(session: Session = Depends(get_session)) -> User:
    """Signed-in operator, or 401."""
    return session.require_user()

# Role-based access control dependencies
def require_role(allowed_roles: List[Role]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_checker

# Specific role dependencies
async def get_admin_user(
    current_user: User = Depends(require_role([Role.ADMIN]))
) -> User:
    """Require admin role."""
    return current_user

async def get_schedule_reader(
    current_user: User = Depends(require_role([Role.ADMIN, Role.RECEPTIONIST, Role.DOCTOR]))
) -> User:
    """Staff who may look at the duty schedule."""
    return current_user

async def get_loaded_registry(
    registry: ShiftRegistry = Depends(get_registry),
    _: User = Depends(get_schedule_reader),
) -> ShiftRegistry:
    """Registry, fetched on first use after startup or reload."""
    if not registry.loaded:
        await registry.load_all()
    return registry

def visible_doctor_id(current_user: User, requested: Optional[int] = None) -> Optional[int]:
    """Doctors only ever see their own shifts; other staff may filter."""
    if current_user.role == Role.DOCTOR:
        if current_user.doctor_id is None:
            raise AuthorizationError("Không tìm thấy thông tin bác sĩ. Vui lòng đăng nhập lại.")
        return current_user.doctor_id
    return requested
