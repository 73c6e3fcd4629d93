from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ...api.deps import (
    get_admin_user, get_board, get_loaded_registry, get_registry,
    get_schedule_reader, visible_doctor_id,
)
from ...core.errors import AssignmentNotFoundError
from ...core.security import AuthorizationError
from ...models.shift import DoctorShiftAssignment, Shift, ShiftCount
from ...models.user import User
from ...schemas.schedule import CancellationView, InFlightResponse, ReasonRequest, RestoreView
from ...services.board import WorkflowBoard
from ...services.registry import DayColumn, ShiftRegistry

router = APIRouter(tags=["Doctor shifts"])

# Schedule views

@router.post("/doctor-shifts/reload", response_model=ShiftCount)
async def reload_doctor_shifts(
    current_user: User = Depends(get_schedule_reader),
    registry: ShiftRegistry = Depends(get_registry),
    board: WorkflowBoard = Depends(get_board),
):
    """Refetch every doctor shift and shift definition."""
    await registry.load_all()
    board.discard_settled()
    return registry.stats(visible_doctor_id(current_user))

@router.get("/doctor-shifts", response_model=List[DoctorShiftAssignment])
async def list_doctor_shifts(
    doctor_id: Optional[int] = None,
    current_user: User = Depends(get_schedule_reader),
    registry: ShiftRegistry = Depends(get_loaded_registry),
):
    """Cached doctor shifts, optionally for one doctor."""
    doctor_id = visible_doctor_id(current_user, doctor_id)
    if doctor_id is None:
        return registry.all()
    return registry.for_doctor(doctor_id)

@router.get("/doctor-shifts/week", response_model=List[DayColumn])
async def week_schedule(
    anchor: Optional[date] = None,
    consultations: bool = True,
    on_leave: bool = True,
    doctor_id: Optional[int] = None,
    current_user: User = Depends(get_schedule_reader),
    registry: ShiftRegistry = Depends(get_loaded_registry),
):
    """Monday-to-Sunday grid of the week containing ``anchor`` (default today)."""
    return registry.week_grid(
        anchor or date.today(),
        consultations=consultations,
        on_leave=on_leave,
        doctor_id=visible_doctor_id(current_user, doctor_id),
    )

@router.get("/doctor-shifts/stats", response_model=ShiftCount)
async def doctor_shift_stats(
    current_user: User = Depends(get_schedule_reader),
    registry: ShiftRegistry = Depends(get_loaded_registry),
):
    return registry.stats(visible_doctor_id(current_user))

@router.get("/doctor-shifts/in-flight", response_model=InFlightResponse)
async def in_flight(
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    """Doctor shifts with a preview, commit or restore still pending."""
    return InFlightResponse(assignment_ids=board.in_flight())

@router.get("/doctor-shifts/{assignment_id}", response_model=DoctorShiftAssignment)
async def get_doctor_shift(
    assignment_id: int,
    current_user: User = Depends(get_schedule_reader),
    registry: ShiftRegistry = Depends(get_loaded_registry),
):
    assignment = registry.get(assignment_id)
    if assignment is None:
        raise AssignmentNotFoundError()
    own = visible_doctor_id(current_user)
    if own is not None and assignment.doctor_id != own:
        raise AuthorizationError("Access denied")
    return assignment

@router.get("/shifts", response_model=List[Shift])
async def list_shifts(registry: ShiftRegistry = Depends(get_loaded_registry)):
    """Shift definitions ordered by start time."""
    return registry.shifts()

# Cancellation (admin only)

@router.get("/doctor-shifts/{assignment_id}/cancellation", response_model=CancellationView)
async def get_cancellation(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    return board.cancellation(assignment_id).view()

@router.post("/doctor-shifts/{assignment_id}/cancellation", response_model=CancellationView)
async def start_cancellation(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    __: ShiftRegistry = Depends(get_loaded_registry),
    board: WorkflowBoard = Depends(get_board),
):
    """Select the shift and load the impact preview."""
    workflow = await board.start_cancellation(assignment_id)
    return workflow.view()

@router.put("/doctor-shifts/{assignment_id}/cancellation/reason", response_model=CancellationView)
async def enter_cancellation_reason(
    assignment_id: int,
    reason_data: ReasonRequest,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.cancellation(assignment_id)
    workflow.enter_reason(reason_data.reason)
    return workflow.view()

@router.post("/doctor-shifts/{assignment_id}/cancellation/confirm", response_model=CancellationView)
async def confirm_cancellation(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    """Commit the cancellation; remote failures come back as a failed view."""
    workflow = board.cancellation(assignment_id)
    await workflow.confirm()
    return workflow.view()

@router.post("/doctor-shifts/{assignment_id}/cancellation/retry", response_model=CancellationView)
async def retry_cancellation(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.cancellation(assignment_id)
    await workflow.retry()
    return workflow.view()

@router.delete("/doctor-shifts/{assignment_id}/cancellation", response_model=CancellationView)
async def abandon_cancellation(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.cancellation(assignment_id)
    workflow.abandon()
    return workflow.view()

# Restore (admin only)

@router.get("/doctor-shifts/{assignment_id}/restoration", response_model=RestoreView)
async def get_restoration(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    return board.restoration(assignment_id).view()

@router.post("/doctor-shifts/{assignment_id}/restoration", response_model=RestoreView)
async def open_restoration(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    __: ShiftRegistry = Depends(get_loaded_registry),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.open_restoration(assignment_id)
    return workflow.view()

@router.post("/doctor-shifts/{assignment_id}/restoration/confirm", response_model=RestoreView)
async def confirm_restoration(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.restoration(assignment_id)
    await workflow.confirm()
    return workflow.view()

@router.delete("/doctor-shifts/{assignment_id}/restoration", response_model=RestoreView)
async def abandon_restoration(
    assignment_id: int,
    _: User = Depends(get_admin_user),
    board: WorkflowBoard = Depends(get_board),
):
    workflow = board.restoration(assignment_id)
    workflow.abandon()
    return workflow.view()
