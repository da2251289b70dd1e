"""Post-hoc conflict analysis of a schedule for human review."""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, List, Tuple

from timetabler.constraints import soft
from timetabler.constraints.checker import ConstraintChecker
from timetabler.constraints.hard import unplaced_session
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.schemas import Conflict, ConflictKind, ConflictType, Entry, Severity
from timetabler.slots import DAY_NAMES, slot_matches

SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
TYPE_ORDER = {ConflictType.FACULTY: 0, ConflictType.CLASSROOM: 1, ConflictType.STUDENT: 2, ConflictType.RESOURCE: 3}


class ConflictAnalyzer:
    """
    Lists hard violations and notable soft-constraint breaches of a schedule.

    The analysis depends only on the schedule and the run inputs, so any
    stored schedule can be re-analyzed later with the same outcome.
    """

    def __init__(self, problem: SchedulingProblem) -> None:
        self.problem = problem
        self.constraints = problem.constraints
        self.checker = ConstraintChecker(problem)

    def analyze(self, schedule: Schedule) -> List[Conflict]:
        state = self.checker.track(schedule)
        conflicts = list(state.violations())
        conflicts.extend(self._workload(schedule))
        conflicts.extend(self._gaps(schedule))
        conflicts.extend(self._utilization(len(state.bookings["classroom"])))
        conflicts.extend(self._avoided_slots(schedule))
        conflicts.extend(self._travel(schedule))
        if self.constraints.allow_partial:
            for session_id in sorted(state.unplaced):
                conflicts.append(unplaced_session(self.problem.sessions_by_id[session_id], Severity.MEDIUM))
        return sorted(conflicts, key=lambda c: (SEVERITY_ORDER[c.severity], TYPE_ORDER[c.type]))

    def _day(self, entry: Entry) -> int:
        # the slot is authoritative; Entry.day is a denormalised copy
        return self.problem.slots[entry.time_slot_id].day

    def _workload(self, schedule: Schedule) -> List[Conflict]:
        settings = self.constraints.faculty_workload
        margin = self.constraints.thresholds.workload_overload_pct / 100.0
        weekly: Dict[Tuple[str, int], List[str]] = defaultdict(list)
        daily: Dict[Tuple[str, int, int], List[str]] = defaultdict(list)
        minutes: Dict[str, int] = {}
        for entry in schedule.entries:
            weekly[(entry.faculty_id, entry.week)].append(entry.id)
            daily[(entry.faculty_id, self._day(entry), entry.week)].append(entry.id)
            minutes[entry.id] = self.problem.courses[entry.course_id].duration

        found: List[Conflict] = []
        for faculty_id in sorted(self.problem.faculty):
            member = self.problem.faculty[faculty_id]
            low, high = soft.workload_band(member, settings)
            for week in self.problem.weeks or [1]:
                ids = weekly.get((faculty_id, week), [])
                load = sum(minutes[i] for i in ids)
                if load > high * (1 + margin):
                    found.append(
                        Conflict(
                            type=ConflictType.FACULTY,
                            severity=Severity.MEDIUM,
                            kind=ConflictKind.WEEKLY_OVERLOAD,
                            description=(
                                f"Faculty {faculty_id} teaches {load / 60:.1f}h in week {week}, "
                                f"over the {high / 60:.1f}h maximum"
                            ),
                            affected_entries=tuple(sorted(ids)),
                        )
                    )
                elif ids and load < low * (1 - margin):
                    found.append(
                        Conflict(
                            type=ConflictType.FACULTY,
                            severity=Severity.LOW,
                            kind=ConflictKind.WEEKLY_UNDERLOAD,
                            description=(
                                f"Faculty {faculty_id} teaches {load / 60:.1f}h in week {week}, "
                                f"under the {low / 60:.1f}h minimum"
                            ),
                            affected_entries=tuple(sorted(ids)),
                        )
                    )
        for (faculty_id, day, week), ids in sorted(daily.items()):
            limit = soft.daily_limit(self.problem.faculty[faculty_id], settings)
            load = sum(minutes[i] for i in ids)
            if load > limit:
                found.append(
                    Conflict(
                        type=ConflictType.FACULTY,
                        severity=Severity.MEDIUM,
                        kind=ConflictKind.DAILY_OVERLOAD,
                        description=(
                            f"Faculty {faculty_id} teaches {load / 60:.1f}h on {DAY_NAMES.get(day, day)} "
                            f"(week {week}), over the {limit / 60:.1f}h daily limit"
                        ),
                        affected_entries=tuple(sorted(ids)),
                    )
                )
        return found

    def _gaps(self, schedule: Schedule) -> List[Conflict]:
        limit = self.constraints.student_gaps.max_gaps_per_day
        days: Dict[Tuple[str, int, int], List[str]] = defaultdict(list)
        for entry in schedule.entries:
            days[(entry.student_group_id, self._day(entry), entry.week)].append(entry.id)

        found: List[Conflict] = []
        for (group_id, day, week), ids in sorted(days.items()):
            occupied = [self.problem.slots[schedule.assignments[i].time_slot_id].period for i in ids]
            gaps = soft.day_gaps(self.problem.periods_by_day.get(day, []), occupied)
            if gaps > limit:
                found.append(
                    Conflict(
                        type=ConflictType.STUDENT,
                        severity=Severity.LOW,
                        kind=ConflictKind.STUDENT_GAPS,
                        description=(
                            f"Group {group_id} has {gaps} idle periods on {DAY_NAMES.get(day, day)} "
                            f"(week {week}), more than {limit}"
                        ),
                        affected_entries=tuple(sorted(ids)),
                    )
                )
        return found

    def _utilization(self, occupied: int) -> List[Conflict]:
        band = self.constraints.classroom_utilization
        tolerance = self.constraints.thresholds.utilization_tolerance_pct
        rate = soft.utilization_rate(occupied, self.problem.room_slot_capacity)
        if band.min_utilization - tolerance <= rate <= band.max_utilization + tolerance:
            return []
        return [
            Conflict(
                type=ConflictType.CLASSROOM,
                severity=Severity.LOW,
                kind=ConflictKind.UTILIZATION,
                description=(
                    f"Classroom utilization is {rate:.1f}%, outside the "
                    f"{band.min_utilization:.0f}-{band.max_utilization:.0f}% target"
                ),
            )
        ]

    def _avoided_slots(self, schedule: Schedule) -> List[Conflict]:
        threshold = self.constraints.thresholds.avoided_slot_pct
        found: List[Conflict] = []
        for department, prefs in sorted(self.constraints.department_preferences.items()):
            entries = [e for e in schedule.entries if self.problem.courses[e.course_id].department == department]
            if not entries or not prefs.avoided_slots:
                continue
            avoided = sorted(
                e.id for e in entries if slot_matches(self.problem.slots[e.time_slot_id], prefs.avoided_slots)
            )
            share = 100.0 * len(avoided) / len(entries)
            if avoided and share > threshold:
                found.append(
                    Conflict(
                        type=ConflictType.RESOURCE,
                        severity=Severity.LOW,
                        kind=ConflictKind.AVOIDED_SLOT,
                        description=(
                            f"{len(avoided)} of {len(entries)} {department} sessions sit in avoided slots"
                        ),
                        affected_entries=tuple(avoided),
                    )
                )
        return found

    def _travel(self, schedule: Schedule) -> List[Conflict]:
        limit = self.constraints.thresholds.travel_cost_per_day
        days: Dict[Tuple[str, str, int, int], List[Entry]] = defaultdict(list)
        for entry in schedule.entries:
            day = self._day(entry)
            days[("faculty", entry.faculty_id, day, entry.week)].append(entry)
            days[("student", entry.student_group_id, day, entry.week)].append(entry)

        found: List[Conflict] = []
        for (family, owner, day, week), entries in sorted(days.items()):
            placements = [(self.problem.slots[e.time_slot_id].period, e.classroom_id) for e in entries]
            cost, _ = soft.day_travel(placements, self.problem.classrooms)
            if cost <= limit:
                continue
            label = "Faculty" if family == "faculty" else "Group"
            found.append(
                Conflict(
                    type=ConflictType.FACULTY if family == "faculty" else ConflictType.STUDENT,
                    severity=Severity.LOW,
                    kind=ConflictKind.TRAVEL,
                    description=(
                        f"{label} {owner} changes rooms across floors or buildings between back-to-back "
                        f"sessions on {DAY_NAMES.get(day, day)} (week {week}), travel cost {cost} over {limit}"
                    ),
                    affected_entries=tuple(sorted(e.id for e in entries)),
                )
            )
        return found
