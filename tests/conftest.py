"""Shared fixtures: a small computer science / mathematics department."""

import pytest

from timetabler.ga.placement import make_entry
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.schemas import (
    Classroom,
    Course,
    Faculty,
    PeriodSpec,
    Priority,
    RoomType,
    SearchConfig,
    SlotGridConfig,
    StudentGroup,
)
from timetabler.slots import build_time_slots


@pytest.fixture
def time_slots():
    """Five days of four teaching periods around an 11:00 break (periods 0, 1, 3, 4)."""
    return build_time_slots(
        SlotGridConfig(
            days=(1, 2, 3, 4, 5),
            periods=(
                PeriodSpec(start_time="09:00", end_time="10:00"),
                PeriodSpec(start_time="10:00", end_time="11:00"),
                PeriodSpec(start_time="11:00", end_time="12:00", is_break=True),
                PeriodSpec(start_time="12:00", end_time="13:00"),
                PeriodSpec(start_time="13:00", end_time="14:00"),
            ),
        )
    )


@pytest.fixture
def catalog(time_slots):
    closed_friday = tuple((True,) * 5 for _ in range(4)) + ((False,) * 5,)
    return {
        "courses": [
            Course(id="CS101", code="CS101", department="CS", year=1, sessions_per_week=3, priority=Priority.HIGH),
            Course(id="CS102", department="CS", year=1, sessions_per_week=2),
            Course(id="CS103L", department="CS", year=1, sessions_per_week=2, room_type=RoomType.LAB, subject_area="labs"),
            Course(id="MA101", department="MATH", year=1, sessions_per_week=2),
        ],
        "faculty": [
            Faculty(id="F1", department="CS", qualifications=("CS101", "CS102")),
            Faculty(id="F2", department="CS", qualifications=("CS102",), areas=("labs",)),
            Faculty(id="F3", department="MATH", qualifications=("MA101",), availability=closed_friday),
        ],
        "classrooms": [
            Classroom(id="R1", capacity=40),
            Classroom(id="R2", capacity=60),
            Classroom(id="L1", room_type=RoomType.LAB, capacity=35),
        ],
        "groups": [
            StudentGroup(id="G1", department="CS", year=1, size=30),
            StudentGroup(id="G2", department="MATH", year=1, size=25),
        ],
        "time_slots": time_slots,
    }


@pytest.fixture
def problem(catalog):
    return SchedulingProblem(**catalog)


@pytest.fixture
def fast_search():
    return SearchConfig(max_iterations=15, population_size=8, random_seed=7, local_search_steps=5)


@pytest.fixture
def place_entry(problem):
    """Build the entry placing a session with the given faculty, room and slot."""

    def build(session_id, faculty_id, room_id, slot_id, target=None):
        target = target or problem
        session = target.sessions_by_id[session_id]
        return make_entry(target, session, faculty_id, room_id, target.slots[slot_id])

    return build


@pytest.fixture
def valid_schedule(problem, place_entry):
    placements = [
        ("CS101:G1:w1:s0", "F1", "R1", "d1p0"),
        ("CS101:G1:w1:s1", "F1", "R1", "d2p0"),
        ("CS101:G1:w1:s2", "F1", "R1", "d3p0"),
        ("CS102:G1:w1:s0", "F2", "R2", "d1p1"),
        ("CS102:G1:w1:s1", "F2", "R2", "d2p1"),
        ("CS103L:G1:w1:s0", "F2", "L1", "d3p1"),
        ("CS103L:G1:w1:s1", "F2", "L1", "d4p1"),
        ("MA101:G2:w1:s0", "F3", "R1", "d1p1"),
        ("MA101:G2:w1:s1", "F3", "R1", "d2p1"),
    ]
    return Schedule.from_entries(problem, [place_entry(*p) for p in placements])
