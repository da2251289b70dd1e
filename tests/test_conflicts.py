from timetabler.conflicts import ConflictAnalyzer
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.schemas import (
    ClassroomUtilization,
    ConflictKind,
    ConflictThresholds,
    ConflictType,
    DepartmentPreference,
    FacultyWorkload,
    OptimizationConstraints,
    Severity,
    StudentGaps,
)


def analyze(catalog, entries, **constraints):
    problem = SchedulingProblem(**catalog, constraints=OptimizationConstraints(**constraints))
    return ConflictAnalyzer(problem).analyze(Schedule.from_entries(problem, entries))


def of_kind(conflicts, kind):
    return [c for c in conflicts if c.kind == kind]


def test_valid_schedule_has_no_hard_conflicts(catalog, valid_schedule):
    conflicts = analyze(catalog, valid_schedule.entries)
    assert not [c for c in conflicts if c.severity == Severity.HIGH]
    # 9 of 60 room-slots are used, far below the default band
    assert len(of_kind(conflicts, ConflictKind.UTILIZATION)) == 1


def test_hard_violations_come_first(catalog, valid_schedule, place_entry):
    valid_schedule.assignments["MA101:G2:w1:s0"] = place_entry("MA101:G2:w1:s0", "F3", "R1", "d1p0")
    conflicts = analyze(catalog, valid_schedule.entries)
    assert conflicts[0].severity == Severity.HIGH
    assert conflicts[0].type == ConflictType.CLASSROOM
    order = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
    ranks = [order[c.severity] for c in conflicts]
    assert ranks == sorted(ranks)


def test_weekly_overload_and_underload(catalog, valid_schedule):
    catalog["faculty"][0] = catalog["faculty"][0].model_copy(update={"max_load_per_week": 2})
    conflicts = analyze(catalog, valid_schedule.entries)
    overload = of_kind(conflicts, ConflictKind.WEEKLY_OVERLOAD)
    assert len(overload) == 1
    assert overload[0].severity == Severity.MEDIUM
    assert overload[0].affected_entries == ("CS101:G1:w1:s0", "CS101:G1:w1:s1", "CS101:G1:w1:s2")
    # F2 and F3 teach far less than the 8h minimum
    underload = of_kind(conflicts, ConflictKind.WEEKLY_UNDERLOAD)
    assert [c.affected_entries[0].split(":")[0] for c in underload] == ["CS102", "MA101"]
    assert all(c.severity == Severity.LOW for c in underload)


def test_overload_tolerance(catalog, valid_schedule):
    # 3h against a 2h maximum is 50% over
    catalog["faculty"][0] = catalog["faculty"][0].model_copy(update={"max_load_per_week": 2})
    conflicts = analyze(catalog, valid_schedule.entries, thresholds=ConflictThresholds(workload_overload_pct=60))
    assert of_kind(conflicts, ConflictKind.WEEKLY_OVERLOAD) == []


def test_daily_overload(catalog, valid_schedule, place_entry):
    valid_schedule.assignments["CS102:G1:w1:s1"] = place_entry("CS102:G1:w1:s1", "F2", "R2", "d1p3")
    conflicts = analyze(catalog, valid_schedule.entries, faculty_workload=FacultyWorkload(max_hours_per_day=1))
    daily = of_kind(conflicts, ConflictKind.DAILY_OVERLOAD)
    assert len(daily) == 1
    assert daily[0].type == ConflictType.FACULTY
    assert daily[0].affected_entries == ("CS102:G1:w1:s0", "CS102:G1:w1:s1")
    assert "monday" in daily[0].description


def test_student_gaps(catalog, valid_schedule, place_entry):
    valid_schedule.assignments["CS102:G1:w1:s0"] = place_entry("CS102:G1:w1:s0", "F2", "R2", "d1p4")
    assert of_kind(analyze(catalog, valid_schedule.entries), ConflictKind.STUDENT_GAPS) == []

    conflicts = analyze(catalog, valid_schedule.entries, student_gaps=StudentGaps(max_gaps_per_day=1))
    gaps = of_kind(conflicts, ConflictKind.STUDENT_GAPS)
    assert len(gaps) == 1
    assert gaps[0].type == ConflictType.STUDENT
    assert gaps[0].affected_entries == ("CS101:G1:w1:s0", "CS102:G1:w1:s0")


def test_utilization_inside_band(catalog, valid_schedule):
    band = ClassroomUtilization(min_utilization=10, max_utilization=20)
    conflicts = analyze(catalog, valid_schedule.entries, classroom_utilization=band)
    assert of_kind(conflicts, ConflictKind.UTILIZATION) == []


def test_avoided_slots(catalog, valid_schedule):
    prefs = {"MATH": DepartmentPreference(avoided_slots=("10:00-11:00",))}
    conflicts = analyze(catalog, valid_schedule.entries, department_preferences=prefs)
    avoided = of_kind(conflicts, ConflictKind.AVOIDED_SLOT)
    assert len(avoided) == 1
    assert avoided[0].affected_entries == ("MA101:G2:w1:s0", "MA101:G2:w1:s1")

    lenient = analyze(
        catalog,
        valid_schedule.entries,
        department_preferences=prefs,
        thresholds=ConflictThresholds(avoided_slot_pct=100),
    )
    assert of_kind(lenient, ConflictKind.AVOIDED_SLOT) == []


def test_unplaced_sessions_are_reported(catalog, valid_schedule):
    entries = [e for e in valid_schedule.entries if e.id != "CS101:G1:w1:s2"]
    strict = of_kind(analyze(catalog, entries), ConflictKind.UNPLACED)
    partial = of_kind(analyze(catalog, entries, allow_partial=True), ConflictKind.UNPLACED)
    assert [c.severity for c in strict] == [Severity.HIGH]
    assert [c.severity for c in partial] == [Severity.MEDIUM]
    assert strict[0].affected_entries == partial[0].affected_entries == ("CS101:G1:w1:s2",)


def test_analysis_is_reproducible(catalog, valid_schedule, place_entry):
    valid_schedule.assignments["CS102:G1:w1:s0"] = place_entry("CS102:G1:w1:s0", "F1", "R1", "d1p0")
    first = analyze(catalog, valid_schedule.entries)
    second = analyze(catalog, list(reversed(valid_schedule.entries)))
    assert first == second


def test_travel_between_buildings(catalog, valid_schedule):
    catalog["classrooms"][1] = catalog["classrooms"][1].model_copy(update={"building": "B"})
    conflicts = analyze(catalog, valid_schedule.entries)
    travel = of_kind(conflicts, ConflictKind.TRAVEL)
    # G1 changes building between its first two periods on Monday and Tuesday
    assert [c.affected_entries for c in travel] == [
        ("CS101:G1:w1:s0", "CS102:G1:w1:s0"),
        ("CS101:G1:w1:s1", "CS102:G1:w1:s1"),
    ]
    assert all(c.type == ConflictType.STUDENT and c.severity == Severity.LOW for c in travel)
    assert "monday" in travel[0].description

    lenient = analyze(catalog, valid_schedule.entries, thresholds=ConflictThresholds(travel_cost_per_day=2))
    assert of_kind(lenient, ConflictKind.TRAVEL) == []


def test_days_come_from_the_time_slot(catalog, valid_schedule, place_entry):
    valid_schedule.assignments["CS102:G1:w1:s1"] = place_entry("CS102:G1:w1:s1", "F2", "R2", "d1p3")
    mislabelled = [
        e.model_copy(update={"day": 5}) if e.id == "CS102:G1:w1:s1" else e for e in valid_schedule.entries
    ]
    conflicts = analyze(catalog, mislabelled, faculty_workload=FacultyWorkload(max_hours_per_day=1))
    daily = of_kind(conflicts, ConflictKind.DAILY_OVERLOAD)
    assert [c.affected_entries for c in daily] == [("CS102:G1:w1:s0", "CS102:G1:w1:s1")]
