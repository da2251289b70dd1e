"""Compiled, read-only view of the inputs of one scheduling run."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from timetabler.exceptions import ConfigurationError
from timetabler.schemas import (
    Classroom,
    Course,
    Faculty,
    OptimizationConstraints,
    Priority,
    RoomType,
    StudentGroup,
    TimeSlot,
)
from timetabler.slots import periods_by_day, slot_matches

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


@dataclass(frozen=True)
class SessionRequest:
    """One weekly session of one course for one student group in one week."""

    id: str
    course: Course
    group: StudentGroup
    week: int
    index: int


def session_id(course_id: str, group_id: str, week: int, index: int) -> str:
    return f"{course_id}:{group_id}:w{week}:s{index}"


class SchedulingProblem:
    """
    Indexes the input records of a run and answers static eligibility questions.

    Everything here is derived once from immutable inputs and never mutated
    afterwards, so a problem can be shared by worker threads of the same run
    or pickled to worker processes.
    """

    def __init__(
        self,
        courses: Sequence[Course],
        faculty: Sequence[Faculty],
        classrooms: Sequence[Classroom],
        groups: Sequence[StudentGroup],
        time_slots: Sequence[TimeSlot],
        constraints: Optional[OptimizationConstraints] = None,
    ) -> None:
        self.constraints = constraints or OptimizationConstraints()
        self.courses = _index("course", courses)
        self.faculty = _index("faculty", faculty)
        self.classrooms = _index("classroom", classrooms)
        self.groups = _index("student group", groups)
        self.slots = _index("time slot", time_slots)

        self.assignable_slots: List[TimeSlot] = sorted(
            (s for s in self.slots.values() if not s.is_break), key=lambda s: (s.day, s.period)
        )
        self.periods_by_day: Dict[int, List[int]] = periods_by_day(self.assignable_slots)
        self.available_rooms: List[Classroom] = [r for r in self.classrooms.values() if r.is_available]
        # room id -> ids of the slots it is closed for maintenance
        self.maintenance: Dict[str, Set[str]] = {
            rid: {s.id for s in self.slots.values() if slot_matches(s, room.maintenance_schedule)}
            for rid, room in self.classrooms.items()
        }
        self.slots_for_course: Dict[str, List[TimeSlot]] = {
            cid: [s for s in self.assignable_slots if s.duration >= course.duration]
            for cid, course in self.courses.items()
        }

        self.groups_for_course: Dict[str, List[StudentGroup]] = {
            cid: self._enrolled_groups(course) for cid, course in self.courses.items()
        }
        self.eligible_faculty: Dict[str, List[Faculty]] = {
            cid: [f for f in self.faculty.values() if self.is_qualified(f, course)]
            for cid, course in self.courses.items()
        }
        self.eligible_rooms: Dict[Tuple[str, str], List[Classroom]] = {}
        for cid, course in self.courses.items():
            for group in self.groups_for_course[cid]:
                self.eligible_rooms[(cid, group.id)] = [
                    r for r in self.available_rooms if self.room_fits(r, course, group)
                ]

        self.weeks: List[int] = sorted({w for c in self.courses.values() for w in c.weeks})
        self.sessions: List[SessionRequest] = self._build_sessions()
        self.sessions_by_id: Dict[str, SessionRequest] = {s.id: s for s in self.sessions}
        self.room_slot_capacity: int = max(1, len(self.weeks)) * sum(
            1 for room in self.available_rooms for slot in self.assignable_slots if self.is_open(room, slot)
        )

    # --- Eligibility ---
    def _enrolled_groups(self, course: Course) -> List[StudentGroup]:
        if course.student_group_ids:
            return [self.groups[gid] for gid in course.student_group_ids if gid in self.groups]
        enrolled = []
        for group in self.groups.values():
            same_cohort = group.department == course.department and group.year == course.year
            elective = course.id in group.electives or (course.code and course.code in group.electives)
            if same_cohort or elective:
                enrolled.append(group)
        return enrolled

    def is_qualified(self, faculty: Faculty, course: Course) -> bool:
        if course.faculty_id is not None:
            return faculty.id == course.faculty_id
        if course.id in faculty.qualifications:
            return True
        if course.code and course.code in faculty.qualifications:
            return True
        return course.subject_area is not None and course.subject_area in faculty.areas

    @staticmethod
    def room_fits(room: Classroom, course: Course, group: StudentGroup) -> bool:
        return room.room_type == course.room_type and room.capacity >= group.size

    @staticmethod
    def is_available(faculty: Faculty, slot: TimeSlot) -> bool:
        """Cells outside the availability matrix count as available."""
        if slot.day - 1 >= len(faculty.availability):
            return True
        row = faculty.availability[slot.day - 1]
        if slot.period >= len(row):
            return True
        return row[slot.period]

    def is_open(self, room: Classroom, slot: TimeSlot) -> bool:
        """Room is in operation and not under maintenance during the slot."""
        return room.is_available and slot.id not in self.maintenance[room.id]

    def is_online(self, course: Course) -> bool:
        return course.room_type == RoomType.ONLINE

    def static_options(self, session: SessionRequest) -> int:
        """Rough size of a session's search space, used to place tight sessions first."""
        faculty = self.eligible_faculty[session.course.id]
        open_slots = sum(
            1
            for slot in self.slots_for_course[session.course.id]
            if any(self.is_available(f, slot) for f in faculty)
        )
        return open_slots * len(self.eligible_rooms[(session.course.id, session.group.id)])

    def _build_sessions(self) -> List[SessionRequest]:
        sessions: List[SessionRequest] = []
        for cid, course in self.courses.items():
            for group in self.groups_for_course[cid]:
                for week in course.weeks:
                    for index in range(course.sessions_per_week):
                        sessions.append(
                            SessionRequest(
                                id=session_id(cid, group.id, week, index),
                                course=course,
                                group=group,
                                week=week,
                                index=index,
                            )
                        )
        return sessions

    def placement_order(self) -> List[SessionRequest]:
        """Sessions ordered by course priority, then most constrained first."""
        options = {s.id: self.static_options(s) for s in self.sessions}
        return sorted(
            self.sessions,
            key=lambda s: (PRIORITY_ORDER[s.course.priority], options[s.id], s.id),
        )

    @property
    def session_count(self) -> int:
        return len(self.sessions)

    # --- Validation ---
    def validate(self) -> None:
        """
        Reject inputs that would make the search pointless.

        Raises:
            ConfigurationError: On the first problem found.
        """
        if not self.courses:
            raise ConfigurationError("no courses to schedule")
        if not self.assignable_slots:
            raise ConfigurationError("the time slot grid has no assignable (non-break) slots")
        for slot in self.slots.values():
            if slot.duration <= 0:
                raise ConfigurationError("end time must be after start time", subject=f"time slot {slot.id}")
        self._validate_bounds()

        longest_day = max(len(p) for p in self.periods_by_day.values())
        for member in self.faculty.values():
            if member.max_load_per_day > longest_day:
                raise ConfigurationError(
                    f"max_load_per_day={member.max_load_per_day} exceeds the {longest_day} slots of the longest day",
                    subject=f"faculty {member.id}",
                )

        for cid, course in self.courses.items():
            subject = f"course {cid}"
            if course.faculty_id is not None and course.faculty_id not in self.faculty:
                raise ConfigurationError(f"unknown fixed faculty {course.faculty_id!r}", subject=subject)
            unknown_groups = [g for g in course.student_group_ids if g not in self.groups]
            if unknown_groups:
                raise ConfigurationError(f"unknown student groups {unknown_groups}", subject=subject)
            missing = [p for p in course.prerequisites if p not in self.courses]
            if missing:
                logger.warning(f"Course {cid} lists prerequisites outside this run: {missing}")
            if not self.groups_for_course[cid]:
                raise ConfigurationError("no student group is enrolled", subject=subject)
            if not self.eligible_faculty[cid]:
                raise ConfigurationError("no eligible faculty", subject=subject)
            if not self.slots_for_course[cid]:
                raise ConfigurationError(
                    f"no time slot is long enough for {course.duration}-minute sessions", subject=subject
                )
            for group in self.groups_for_course[cid]:
                if not self.eligible_rooms[(cid, group.id)]:
                    raise ConfigurationError(
                        f"no available {course.room_type.value} classroom holds group {group.id} "
                        f"({group.size} students)",
                        subject=subject,
                    )

    def _validate_bounds(self) -> None:
        c = self.constraints
        if c.faculty_workload.min_hours_per_week > c.faculty_workload.max_hours_per_week:
            raise ConfigurationError("min_hours_per_week is greater than max_hours_per_week", subject="constraints")
        if c.classroom_utilization.min_utilization > c.classroom_utilization.max_utilization:
            raise ConfigurationError("min_utilization is greater than max_utilization", subject="constraints")
        w = c.weights
        if w.workload + w.utilization + w.gaps + w.department + w.travel + w.faculty_preference <= 0:
            raise ConfigurationError("at least one scoring weight must be positive", subject="constraints")
        for department, prefs in c.department_preferences.items():
            overlap = set(prefs.preferred_slots) & set(prefs.avoided_slots)
            if overlap:
                raise ConfigurationError(
                    f"slots both preferred and avoided: {sorted(overlap)}", subject=f"department {department}"
                )


def _index(kind: str, records: Iterable) -> Dict[str, object]:
    index: Dict[str, object] = {}
    for record in records:
        if record.id in index:
            raise ConfigurationError(f"duplicate {kind} id {record.id!r}")
        index[record.id] = record
    return index
