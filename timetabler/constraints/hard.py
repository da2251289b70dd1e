"""Hard constraint primitives.

Hard constraints are mandatory: a schedule violating any of them is
unusable. Double bookings are found by grouping entries on booking keys;
everything else is a property of a single entry.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple

from timetabler.exceptions import ConfigurationError
from timetabler.problem import SchedulingProblem, SessionRequest
from timetabler.schemas import Conflict, ConflictKind, ConflictType, Entry, Severity
from timetabler.slots import describe_slot

BookingKey = Tuple[str, str, int]

# Resource families that may not be double-booked, with the conflict type they report.
BOOKING_TYPES: Dict[str, ConflictType] = {
    "faculty": ConflictType.FACULTY,
    "classroom": ConflictType.CLASSROOM,
    "student": ConflictType.STUDENT,
}


def booking_keys(entry: Entry) -> Dict[str, BookingKey]:
    return {
        "faculty": (entry.faculty_id, entry.time_slot_id, entry.week),
        "classroom": (entry.classroom_id, entry.time_slot_id, entry.week),
        "student": (entry.student_group_id, entry.time_slot_id, entry.week),
    }


def double_booking(family: str, key: BookingKey, entry_ids: Sequence[str], problem: SchedulingProblem) -> Conflict:
    owner, slot_id, week = key
    slot = problem.slots.get(slot_id)
    when = describe_slot(slot) if slot is not None else slot_id
    label = {"faculty": "Faculty", "classroom": "Classroom", "student": "Student group"}[family]
    return Conflict(
        type=BOOKING_TYPES[family],
        severity=Severity.HIGH,
        kind=ConflictKind.DOUBLE_BOOKING,
        description=f"{label} {owner} is booked {len(entry_ids)} times on {when} (week {week})",
        affected_entries=tuple(sorted(entry_ids)),
    )


def unplaced_session(session: SessionRequest, severity: Severity = Severity.HIGH) -> Conflict:
    return Conflict(
        type=ConflictType.RESOURCE,
        severity=severity,
        kind=ConflictKind.UNPLACED,
        description=(
            f"Session {session.index + 1} of course {session.course.id} for group {session.group.id} "
            f"(week {session.week}) has no placement"
        ),
        affected_entries=(session.id,),
    )


def static_violations(entry: Entry, problem: SchedulingProblem) -> List[Conflict]:
    """
    Violations an entry carries regardless of the rest of the schedule.

    Raises:
        ConfigurationError: If the entry references records outside the problem.
    """
    course = _lookup(problem.courses, entry.course_id, "course", entry)
    faculty = _lookup(problem.faculty, entry.faculty_id, "faculty", entry)
    room = _lookup(problem.classrooms, entry.classroom_id, "classroom", entry)
    group = _lookup(problem.groups, entry.student_group_id, "student group", entry)
    slot = _lookup(problem.slots, entry.time_slot_id, "time slot", entry)

    found: List[Conflict] = []

    def flag(kind: ConflictKind, type_: ConflictType, description: str) -> None:
        found.append(
            Conflict(
                type=type_,
                severity=Severity.HIGH,
                kind=kind,
                description=description,
                affected_entries=(entry.id,),
            )
        )

    if slot.is_break:
        flag(ConflictKind.BREAK_SLOT, ConflictType.RESOURCE, f"Entry {entry.id} is placed in break slot {slot.id}")
    if slot.duration < course.duration:
        flag(
            ConflictKind.SLOT_TOO_SHORT,
            ConflictType.RESOURCE,
            f"Course {course.id} runs {course.duration} minutes but slot {slot.id} lasts {slot.duration}",
        )
    if entry.week not in course.weeks:
        flag(
            ConflictKind.WRONG_WEEK,
            ConflictType.RESOURCE,
            f"Course {course.id} is not taught in week {entry.week}",
        )
    if not problem.is_available(faculty, slot):
        flag(
            ConflictKind.UNAVAILABLE,
            ConflictType.FACULTY,
            f"Faculty {faculty.id} is not available on {describe_slot(slot)}",
        )
    if not problem.is_qualified(faculty, course):
        flag(
            ConflictKind.NOT_QUALIFIED,
            ConflictType.FACULTY,
            f"Faculty {faculty.id} is not eligible to teach course {course.id}",
        )
    if room.room_type != course.room_type:
        flag(
            ConflictKind.ROOM_TYPE,
            ConflictType.CLASSROOM,
            f"Classroom {room.id} is a {room.room_type.value} room but course {course.id} "
            f"needs {course.room_type.value}",
        )
    if room.capacity < group.size:
        flag(
            ConflictKind.CAPACITY,
            ConflictType.CLASSROOM,
            f"Classroom {room.id} seats {room.capacity} but group {group.id} has {group.size} students",
        )
    if not room.is_available:
        flag(ConflictKind.ROOM_CLOSED, ConflictType.CLASSROOM, f"Classroom {room.id} is not in operation")
    elif slot.id in problem.maintenance[room.id]:
        flag(
            ConflictKind.MAINTENANCE,
            ConflictType.CLASSROOM,
            f"Classroom {room.id} is under maintenance on {describe_slot(slot)}",
        )
    return found


def _lookup(index: Dict[str, object], key: str, kind: str, entry: Entry) -> Optional[object]:
    try:
        return index[key]
    except KeyError:
        raise ConfigurationError(f"references unknown {kind} {key!r}", subject=f"entry {entry.id}") from None
