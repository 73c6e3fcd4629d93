import asyncio
from datetime import date, timedelta
from typing import Dict, List, Optional
import logging

from pydantic import BaseModel

from .shift_api import ShiftApi
from ..models.shift import AssignmentStatus, DoctorShiftAssignment, Shift, ShiftCount

logger = logging.getLogger(__name__)


def week_dates(anchor: date) -> List[date]:
    """Monday to Sunday of the week containing ``anchor``."""
    monday = anchor - timedelta(days=anchor.weekday())
    return [monday + timedelta(days=i) for i in range(7)]


class ShiftCell(BaseModel):
    shift: Shift
    active: List[DoctorShiftAssignment] = []
    cancelled: List[DoctorShiftAssignment] = []


class DayColumn(BaseModel):
    day: date
    shifts: List[ShiftCell] = []


class ShiftRegistry:
    """In-memory cache of shift definitions and doctor-shift assignments.

    The only mutation path besides ``load_all`` is ``apply_status_change``,
    which workflows call after the backend has confirmed a change.
    """

    def __init__(self, api: ShiftApi):
        self.api = api
        self._assignments: Dict[int, DoctorShiftAssignment] = {}
        self._shifts: Dict[int, Shift] = {}
        self.loaded = False

    async def load_all(self) -> List[DoctorShiftAssignment]:
        """Replace the whole collection with a fresh fetch.

        Raises FetchError; nothing is replaced when either list fails.
        """
        shifts, assignments = await asyncio.gather(
            self.api.list_shifts(),
            self.api.list_doctor_shifts(),
        )

        definitions = {shift.id: shift for shift in shifts}
        for assignment in assignments:
            if assignment.shift is not None:
                # keep one shared instance per shift id
                shared = definitions.setdefault(assignment.shift.id, assignment.shift)
                assignment.shift = shared
            elif assignment.shift_id in definitions:
                assignment.shift = definitions[assignment.shift_id]

        self._shifts = definitions
        self._assignments = {assignment.id: assignment for assignment in assignments}
        self.loaded = True

        logger.info(f"Loaded {len(assignments)} doctor shifts across {len(definitions)} shift definitions")
        return self.all()

    def apply_status_change(
        self,
        assignment_id: int,
        new_status: AssignmentStatus,
        replacement_doctor_id: Optional[int] = None,
    ) -> None:
        assignment = self._assignments.get(assignment_id)
        if assignment is None:
            logger.warning(f"Status change for unknown doctor shift {assignment_id} ignored")
            return

        update = {"status": new_status}
        if replacement_doctor_id is not None:
            update["replacement_doctor_id"] = replacement_doctor_id
        self._assignments[assignment_id] = assignment.model_copy(update=update)

    def find_by_shift_and_date(self, shift_id: int, work_date: date) -> List[DoctorShiftAssignment]:
        return [
            a for a in self._assignments.values()
            if a.shift_id == shift_id and a.work_date == work_date
        ]

    def get(self, assignment_id: int) -> Optional[DoctorShiftAssignment]:
        return self._assignments.get(assignment_id)

    def all(self) -> List[DoctorShiftAssignment]:
        return sorted(self._assignments.values(), key=lambda a: (a.work_date, a.shift_id, a.id))

    def for_doctor(self, doctor_id: int) -> List[DoctorShiftAssignment]:
        return [a for a in self.all() if a.doctor_id == doctor_id]

    def shifts(self) -> List[Shift]:
        return sorted(self._shifts.values(), key=lambda s: (s.start_time, s.id))

    def week_grid(
        self,
        anchor: date,
        consultations: bool = True,
        on_leave: bool = True,
        doctor_id: Optional[int] = None,
    ) -> List[DayColumn]:
        """Build the week view: one column per day, one cell per shift.

        ``consultations`` shows active assignments, ``on_leave`` cancelled
        ones.
        """
        columns = []
        for day in week_dates(anchor):
            cells = []
            for shift in self.shifts():
                assignments = self.find_by_shift_and_date(shift.id, day)
                if doctor_id is not None:
                    assignments = [a for a in assignments if a.doctor_id == doctor_id]
                cells.append(ShiftCell(
                    shift=shift,
                    active=[a for a in assignments if a.is_active] if consultations else [],
                    cancelled=[a for a in assignments if a.is_cancelled] if on_leave else [],
                ))
            columns.append(DayColumn(day=day, shifts=cells))
        return columns

    def stats(self, doctor_id: Optional[int] = None) -> ShiftCount:
        assignments = self.all() if doctor_id is None else self.for_doctor(doctor_id)
        counts = {s: 0 for s in AssignmentStatus}
        for assignment in assignments:
            counts[assignment.status] += 1
        return ShiftCount(
            active=counts[AssignmentStatus.ACTIVE],
            cancelled=counts[AssignmentStatus.CANCELLED],
            replaced=counts[AssignmentStatus.REPLACED],
            total=len(assignments),
        )

    def __len__(self) -> int:
        return len(self._assignments)
