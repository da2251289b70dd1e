"""Constraint checker: feasibility and soft score of candidate schedules."""

from __future__ import annotations
from collections import Counter, defaultdict
from typing import DefaultDict, Dict, List, Optional, Set, Tuple

from timetabler.constraints import soft
from timetabler.constraints.hard import (
    BOOKING_TYPES,
    BookingKey,
    booking_keys,
    double_booking,
    static_violations,
    unplaced_session,
)
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.schemas import Conflict, Entry, Evaluation, ScheduleMetrics
from timetabler.slots import slot_matches


class ScheduleState:
    """
    Aggregates of one schedule that can be updated one entry at a time.

    Every aggregate is an integer, and the score is always recomputed from
    the aggregates by the same code, so a state reached through a series of
    additions and removals scores exactly like a state built from scratch.
    The state doubles as an occupancy view for the placement helpers.
    """

    def __init__(self, problem: SchedulingProblem) -> None:
        self.problem = problem
        self.constraints = problem.constraints
        self.entries: Dict[str, Entry] = {}
        self.unplaced: Set[str] = set()
        self.static: Dict[str, List[Conflict]] = {}

        # family -> booking key -> ids of the entries holding it
        self.bookings: Dict[str, DefaultDict[BookingKey, List[str]]] = {
            family: defaultdict(list) for family in BOOKING_TYPES
        }
        self.clashes: Dict[str, Set[BookingKey]] = {family: set() for family in BOOKING_TYPES}

        workload = self.constraints.faculty_workload
        self.bands = {fid: soft.workload_band(f, workload) for fid, f in problem.faculty.items()}
        self.day_limits = {fid: soft.daily_limit(f, workload) for fid, f in problem.faculty.items()}
        self.week_minutes: Dict[Tuple[str, int], int] = {}
        self.day_minutes: DefaultDict[Tuple[str, int, int], int] = defaultdict(int)
        self.squared_deviation = 0
        self.daily_overload = 0
        self.base_weeks = set(problem.weeks or [1])
        for fid in problem.faculty:
            for week in sorted(self.base_weeks):
                self._open_week(fid, week)

        self.group_days: DefaultDict[Tuple[str, int, int], Counter] = defaultdict(Counter)
        self.total_gaps = 0
        self.total_excess = 0
        self.active_days = 0
        self.zero_gap_days = 0

        # (family, owner, day, week) -> Counter of (period, room id)
        self.room_days: DefaultDict[Tuple[str, str, int, int], Counter] = defaultdict(Counter)
        self.travel_cost = 0
        self.travel_links = 0

        # department -> [entries, in preferred slots, in avoided slots]
        self.departments: Dict[str, List[int]] = {
            name: [0, 0, 0] for name in self.constraints.department_preferences
        }
        # faculty -> [entries, in preferred hours]
        self.preferences: Dict[str, List[int]] = {
            fid: [0, 0] for fid, f in problem.faculty.items() if f.preferred_hours
        }

    # --- Occupancy view ---
    def faculty_busy(self, faculty_id: str, slot_id: str, week: int) -> bool:
        return bool(self.bookings["faculty"].get((faculty_id, slot_id, week)))

    def room_busy(self, room_id: str, slot_id: str, week: int) -> bool:
        return bool(self.bookings["classroom"].get((room_id, slot_id, week)))

    def group_busy(self, group_id: str, slot_id: str, week: int) -> bool:
        return bool(self.bookings["student"].get((group_id, slot_id, week)))

    # --- Updates ---
    def mark_unplaced(self, session_id: str) -> None:
        if session_id in self.problem.sessions_by_id and session_id not in self.entries:
            self.unplaced.add(session_id)

    def add(self, entry: Entry) -> None:
        if entry.id in self.entries:
            raise ValueError(f"entry {entry.id} is already part of the schedule")
        violations = static_violations(entry, self.problem)
        self.entries[entry.id] = entry
        self.unplaced.discard(entry.id)
        if violations:
            self.static[entry.id] = violations
        for family, key in booking_keys(entry).items():
            holders = self.bookings[family][key]
            holders.append(entry.id)
            if len(holders) > 1:
                self.clashes[family].add(key)
        self._apply(entry, +1)

    def remove(self, entry: Entry) -> None:
        stored = self.entries.pop(entry.id, None)
        if stored is None:
            raise ValueError(f"entry {entry.id} is not part of the schedule")
        self.static.pop(stored.id, None)
        for family, key in booking_keys(stored).items():
            holders = self.bookings[family][key]
            holders.remove(stored.id)
            if len(holders) < 2:
                self.clashes[family].discard(key)
            if not holders:
                del self.bookings[family][key]
        self._apply(stored, -1)
        self.mark_unplaced(stored.id)

    def _apply(self, entry: Entry, sign: int) -> None:
        course = self.problem.courses[entry.course_id]
        slot = self.problem.slots[entry.time_slot_id]
        self._shift_load(entry.faculty_id, slot.day, entry.week, sign * course.duration)
        self._shift_group_day(entry.student_group_id, slot.day, slot.period, entry.week, sign)
        for family, owner in (("faculty", entry.faculty_id), ("student", entry.student_group_id)):
            self._shift_travel((family, owner, slot.day, entry.week), (slot.period, entry.classroom_id), sign)
        hours = self.preferences.get(entry.faculty_id)
        if hours is not None:
            hours[0] += sign
            if slot_matches(slot, self.problem.faculty[entry.faculty_id].preferred_hours):
                hours[1] += sign
        prefs = self.constraints.department_preferences.get(course.department)
        if prefs is not None:
            stats = self.departments[course.department]
            stats[0] += sign
            if slot_matches(slot, prefs.preferred_slots):
                stats[1] += sign
            if slot_matches(slot, prefs.avoided_slots):
                stats[2] += sign

    def _open_week(self, faculty_id: str, week: int) -> None:
        low, high = self.bands[faculty_id]
        self.week_minutes[(faculty_id, week)] = 0
        self.squared_deviation += soft.band_deviation(0, low, high) ** 2

    def _shift_load(self, faculty_id: str, day: int, week: int, minutes: int) -> None:
        if (faculty_id, week) not in self.week_minutes:
            self._open_week(faculty_id, week)
        low, high = self.bands[faculty_id]
        before = self.week_minutes[(faculty_id, week)]
        after = before + minutes
        self.week_minutes[(faculty_id, week)] = after
        self.squared_deviation += soft.band_deviation(after, low, high) ** 2 - soft.band_deviation(before, low, high) ** 2
        if after == 0 and week not in self.base_weeks:
            # weeks outside the run only exist while they hold entries
            self.squared_deviation -= soft.band_deviation(0, low, high) ** 2
            del self.week_minutes[(faculty_id, week)]

        limit = self.day_limits[faculty_id]
        key = (faculty_id, day, week)
        before = self.day_minutes[key]
        after = before + minutes
        self.day_minutes[key] = after
        self.daily_overload += max(0, after - limit) - max(0, before - limit)

    def _shift_group_day(self, group_id: str, day: int, period: int, week: int, sign: int) -> None:
        key = (group_id, day, week)
        self._count_day(key, -1)
        counter = self.group_days[key]
        counter[period] += sign
        if counter[period] <= 0:
            del counter[period]
        self._count_day(key, +1)
        if not counter:
            del self.group_days[key]

    def _count_day(self, key: Tuple[str, int, int], sign: int) -> None:
        counter = self.group_days.get(key)
        if not counter:
            return
        gaps = soft.day_gaps(self.problem.periods_by_day.get(key[1], []), counter)
        limit = self.constraints.student_gaps.max_gaps_per_day
        self.active_days += sign
        self.total_gaps += sign * gaps
        self.total_excess += sign * max(0, gaps - limit)
        if gaps == 0:
            self.zero_gap_days += sign

    def _shift_travel(self, key: Tuple[str, str, int, int], placement: Tuple[int, str], sign: int) -> None:
        self._count_travel(key, -1)
        counter = self.room_days[key]
        counter[placement] += sign
        if counter[placement] <= 0:
            del counter[placement]
        self._count_travel(key, +1)
        if not counter:
            del self.room_days[key]

    def _count_travel(self, key: Tuple[str, str, int, int], sign: int) -> None:
        counter = self.room_days.get(key)
        if not counter:
            return
        cost, links = soft.day_travel(counter, self.problem.classrooms)
        self.travel_cost += sign * cost
        self.travel_links += sign * links

    # --- Scoring ---
    def violations(self) -> List[Conflict]:
        found: List[Conflict] = []
        for family in BOOKING_TYPES:
            for key in sorted(self.clashes[family]):
                found.append(double_booking(family, key, self.bookings[family][key], self.problem))
        for entry_id in sorted(self.static):
            found.extend(self.static[entry_id])
        if not self.constraints.allow_partial:
            for session_id in sorted(self.unplaced):
                found.append(unplaced_session(self.problem.sessions_by_id[session_id]))
        return found

    def evaluation(self) -> Evaluation:
        c = self.constraints
        violations = self.violations()
        rate = soft.utilization_rate(len(self.bookings["classroom"]), self.problem.room_slot_capacity)
        scores = {
            "workload": soft.workload_score(self.squared_deviation, self.daily_overload, len(self.week_minutes)),
            "utilization": max(
                0.0,
                soft.utilization_score(
                    rate, c.classroom_utilization.min_utilization, c.classroom_utilization.max_utilization
                ),
            ),
            "gaps": soft.gap_score(
                self.total_gaps, self.total_excess, self.active_days, self.zero_gap_days, c.student_gaps
            ),
            "department": soft.department_score(tuple(stats) for stats in self.departments.values()),
            "travel": soft.travel_score(self.travel_cost, self.travel_links),
            "faculty_preference": soft.faculty_preference_score(tuple(s) for s in self.preferences.values()),
        }
        metrics = ScheduleMetrics(
            teacher_workload_balance=scores["workload"],
            classroom_utilization=scores["utilization"],
            student_gaps=scores["gaps"],
            department_satisfaction=scores["department"],
            travel_efficiency=scores["travel"],
            faculty_preference=scores["faculty_preference"],
            conflict_count=len(violations),
            utilization_rate=rate,
            total_gaps=self.total_gaps,
            travel_cost=self.travel_cost,
        )
        return Evaluation(
            feasible=not violations,
            hard_violations=tuple(violations),
            soft_score=soft.combine(scores, c.weights),
            metrics=metrics,
        )


class ConstraintChecker:
    """Scores schedules against the hard and soft constraints of one problem."""

    def __init__(self, problem: SchedulingProblem) -> None:
        self.problem = problem

    def track(self, schedule: Schedule) -> ScheduleState:
        state = ScheduleState(self.problem)
        for session_id, entry in schedule.assignments.items():
            if entry is None:
                state.mark_unplaced(session_id)
            else:
                state.add(entry)
        return state

    def evaluate(self, schedule: Schedule) -> Evaluation:
        return self.track(schedule).evaluation()

    def evaluate_delta(
        self,
        state: ScheduleState,
        added: Optional[Entry] = None,
        removed: Optional[Entry] = None,
    ) -> Evaluation:
        """
        Apply one removal, one addition, or both (a swap) to a tracked state and re-score it.

        The removal is applied first, so swapping an entry for a new placement
        of the same session is ``evaluate_delta(state, added=new, removed=old)``.
        """
        if added is None and removed is None:
            raise ValueError("evaluate_delta needs an added or a removed entry")
        if removed is not None:
            state.remove(removed)
        if added is not None:
            state.add(added)
        return state.evaluation()
