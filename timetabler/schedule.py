from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from timetabler.problem import SchedulingProblem
from timetabler.schemas import Entry, Evaluation


@dataclass
class Schedule:
    # session id -> placed entry, None while the session is unplaced
    assignments: Dict[str, Optional[Entry]]
    generation: int = 0
    evaluation: Optional[Evaluation] = None
    fitness: Optional[float] = None

    @classmethod
    def empty(cls, problem: SchedulingProblem, generation: int = 0) -> "Schedule":
        return cls(assignments={s.id: None for s in problem.sessions}, generation=generation)

    @classmethod
    def from_entries(cls, problem: SchedulingProblem, entries: Iterable[Entry]) -> "Schedule":
        """
        Schedule for externally supplied entries; sessions they do not cover stay unplaced.

        An entry whose id is a session id fills that session. Any other entry
        fills the first free session of its (course, group, week) and takes
        that session's id; with no free session left it keeps its own id and
        is checked as an extra entry.
        """
        schedule = cls.empty(problem)
        pending: List[Entry] = []
        for entry in entries:
            if entry.id in problem.sessions_by_id:
                schedule.assignments[entry.id] = entry
            else:
                pending.append(entry)
        for entry in pending:
            session_id = next(
                (
                    s.id
                    for s in problem.sessions
                    if s.course.id == entry.course_id
                    and s.group.id == entry.student_group_id
                    and s.week == entry.week
                    and schedule.assignments[s.id] is None
                ),
                None,
            )
            if session_id is not None:
                entry = entry.model_copy(update={"id": session_id})
                schedule.assignments[session_id] = entry
            else:
                schedule.assignments[entry.id] = entry
        return schedule

    @property
    def entries(self) -> List[Entry]:
        return [e for e in self.assignments.values() if e is not None]

    @property
    def unplaced(self) -> List[str]:
        return [sid for sid, e in self.assignments.items() if e is None]

    def copy(self, generation: Optional[int] = None) -> "Schedule":
        """Copy with its own entries; the evaluation is kept since the content is identical."""
        return Schedule(
            assignments={sid: (e.model_copy() if e is not None else None) for sid, e in self.assignments.items()},
            generation=self.generation if generation is None else generation,
            evaluation=self.evaluation,
            fitness=self.fitness,
        )

    def signature(self) -> Tuple:
        return tuple(
            (sid, None if e is None else (e.faculty_id, e.classroom_id, e.time_slot_id))
            for sid, e in self.assignments.items()
        )


@dataclass
class Occupancy:
    """Who is busy when, within one candidate schedule."""

    faculty: Set[Tuple[str, str, int]] = field(default_factory=set)
    rooms: Set[Tuple[str, str, int]] = field(default_factory=set)
    groups: Set[Tuple[str, str, int]] = field(default_factory=set)

    def add(self, entry: Entry) -> None:
        self.faculty.add((entry.faculty_id, entry.time_slot_id, entry.week))
        self.rooms.add((entry.classroom_id, entry.time_slot_id, entry.week))
        self.groups.add((entry.student_group_id, entry.time_slot_id, entry.week))

    def remove(self, entry: Entry) -> None:
        self.faculty.discard((entry.faculty_id, entry.time_slot_id, entry.week))
        self.rooms.discard((entry.classroom_id, entry.time_slot_id, entry.week))
        self.groups.discard((entry.student_group_id, entry.time_slot_id, entry.week))

    def collides(self, entry: Entry) -> bool:
        return (
            self.faculty_busy(entry.faculty_id, entry.time_slot_id, entry.week)
            or self.room_busy(entry.classroom_id, entry.time_slot_id, entry.week)
            or self.group_busy(entry.student_group_id, entry.time_slot_id, entry.week)
        )

    def faculty_busy(self, faculty_id: str, slot_id: str, week: int) -> bool:
        return (faculty_id, slot_id, week) in self.faculty

    def room_busy(self, room_id: str, slot_id: str, week: int) -> bool:
        return (room_id, slot_id, week) in self.rooms

    def group_busy(self, group_id: str, slot_id: str, week: int) -> bool:
        return (group_id, slot_id, week) in self.groups
