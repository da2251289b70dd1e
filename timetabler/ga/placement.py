"""Constrained random placement of single sessions."""

from __future__ import annotations
import random
from typing import List, Optional, Protocol

from timetabler.problem import SchedulingProblem, SessionRequest
from timetabler.schemas import Entry, TimeSlot


class OccupancyView(Protocol):
    def faculty_busy(self, faculty_id: str, slot_id: str, week: int) -> bool: ...

    def room_busy(self, room_id: str, slot_id: str, week: int) -> bool: ...

    def group_busy(self, group_id: str, slot_id: str, week: int) -> bool: ...


def make_entry(problem: SchedulingProblem, session: SessionRequest, faculty_id: str, room_id: str, slot: TimeSlot) -> Entry:
    return Entry(
        id=session.id,
        course_id=session.course.id,
        faculty_id=faculty_id,
        classroom_id=room_id,
        student_group_id=session.group.id,
        time_slot_id=slot.id,
        day=slot.day,
        week=session.week,
        is_online=problem.is_online(session.course),
    )


def place(
    problem: SchedulingProblem,
    session: SessionRequest,
    occupancy: OccupancyView,
    rng: random.Random,
    faculty_id: Optional[str] = None,
) -> Optional[Entry]:
    """
    Pick a random (faculty, room, slot) for a session that breaks no hard constraint.

    Slots long enough for the course are tried in random order; for each one
    the candidate faculty must be eligible, available and free, the room must
    fit, be open and be free, and the group must be free. Passing
    ``faculty_id`` keeps that faculty and re-rolls only the room and slot.

    Returns:
        The new entry, or None when no feasible tuple is left.
    """
    if faculty_id is not None:
        faculty = [problem.faculty[faculty_id]]
    else:
        faculty = problem.eligible_faculty[session.course.id]
    rooms = problem.eligible_rooms[(session.course.id, session.group.id)]
    slots = list(problem.slots_for_course[session.course.id])
    rng.shuffle(slots)
    for slot in slots:
        if occupancy.group_busy(session.group.id, slot.id, session.week):
            continue
        free_faculty = [
            f.id
            for f in faculty
            if problem.is_available(f, slot) and not occupancy.faculty_busy(f.id, slot.id, session.week)
        ]
        if not free_faculty:
            continue
        free_rooms = [
            r.id
            for r in rooms
            if problem.is_open(r, slot) and not occupancy.room_busy(r.id, slot.id, session.week)
        ]
        if not free_rooms:
            continue
        return make_entry(problem, session, rng.choice(free_faculty), rng.choice(free_rooms), slot)
    return None


def reassign_faculty(
    problem: SchedulingProblem,
    entry: Entry,
    occupancy: OccupancyView,
    rng: random.Random,
) -> Optional[Entry]:
    """Same room and slot, another eligible faculty member who is available and free."""
    slot = problem.slots[entry.time_slot_id]
    candidates: List[str] = [
        f.id
        for f in problem.eligible_faculty[entry.course_id]
        if f.id != entry.faculty_id
        and problem.is_available(f, slot)
        and not occupancy.faculty_busy(f.id, slot.id, entry.week)
    ]
    if not candidates:
        return None
    return entry.model_copy(update={"faculty_id": rng.choice(candidates)})
