from __future__ import annotations
from enum import Enum
from typing import Dict, List, Literal, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, confloat, conint, field_validator

from timetabler.exceptions import InfeasibleCourseError


class RoomType(str, Enum):
    THEORY = "theory"
    LAB = "lab"
    SEMINAR = "seminar"
    PROJECTOR = "projector"
    ONLINE = "online"
    HYBRID = "hybrid"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Semester(str, Enum):
    ODD = "odd"
    EVEN = "even"
    BOTH = "both"


class ConflictType(str, Enum):
    FACULTY = "faculty"
    CLASSROOM = "classroom"
    STUDENT = "student"
    RESOURCE = "resource"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConflictKind(str, Enum):
    DOUBLE_BOOKING = "double_booking"
    UNAVAILABLE = "unavailable"
    NOT_QUALIFIED = "not_qualified"
    ROOM_TYPE = "room_type"
    CAPACITY = "capacity"
    ROOM_CLOSED = "room_closed"
    MAINTENANCE = "maintenance"
    BREAK_SLOT = "break_slot"
    SLOT_TOO_SHORT = "slot_too_short"
    WRONG_WEEK = "wrong_week"
    UNPLACED = "unplaced"
    WEEKLY_OVERLOAD = "weekly_overload"
    WEEKLY_UNDERLOAD = "weekly_underload"
    DAILY_OVERLOAD = "daily_overload"
    STUDENT_GAPS = "student_gaps"
    UTILIZATION = "utilization"
    AVOIDED_SLOT = "avoided_slot"
    TRAVEL = "travel"


class TerminationCause(str, Enum):
    MAX_ITERATIONS = "max_iterations"
    TIMEOUT = "timeout"
    STAGNATION = "stagnation"
    CANCELLED = "cancelled"


class Record(BaseModel):
    """Base for the immutable records exchanged with the scheduler."""

    model_config = ConfigDict(frozen=True)


# --- Input records ---

class Course(Record):
    id: str
    name: str = ""
    code: str = ""
    sessions_per_week: conint(ge=1) = 1
    duration: conint(gt=0) = Field(60, description="Session length in minutes")
    room_type: RoomType = RoomType.THEORY
    credits: confloat(ge=0) = 0
    department: str
    year: conint(ge=1) = 1
    semester: Semester = Semester.BOTH
    priority: Priority = Priority.MEDIUM
    prerequisites: Tuple[str, ...] = ()
    faculty_id: Optional[str] = None
    subject_area: Optional[str] = None
    student_group_ids: Tuple[str, ...] = ()
    weeks: Tuple[conint(ge=1), ...] = (1,)

    @field_validator("weeks")
    @classmethod
    def _weeks_not_empty(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        if not value:
            raise ValueError("a course must be placed in at least one week")
        return tuple(sorted(set(value)))


class Faculty(Record):
    id: str
    name: str = ""
    department: str = ""
    max_load_per_day: conint(ge=1) = Field(4, description="Teaching hours per day")
    max_load_per_week: conint(ge=1) = Field(20, description="Teaching hours per week")
    availability: Tuple[Tuple[bool, ...], ...] = Field(
        default=(), description="Matrix indexed [day - 1][period]; empty means always available"
    )
    preferred_hours: Tuple[str, ...] = Field(default=(), description="Slot ids or HH:MM-HH:MM labels")
    qualifications: Tuple[str, ...] = ()
    areas: Tuple[str, ...] = ()


class Classroom(Record):
    id: str
    name: str = ""
    room_type: RoomType = RoomType.THEORY
    capacity: conint(ge=1)
    department: str = ""
    building: str = ""
    floor: int = 0
    resources: Tuple[str, ...] = ()
    is_available: bool = True
    maintenance_schedule: Tuple[str, ...] = Field(
        default=(), description="Slot ids or HH:MM-HH:MM labels during which the room is closed"
    )


class TimeSlot(Record):
    id: str
    day: conint(ge=1, le=7)
    period: conint(ge=0)
    start_time: str
    end_time: str
    is_break: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_clock(cls, value: str) -> str:
        hours, _, minutes = value.partition(":")
        if not (hours.isdigit() and minutes.isdigit() and len(minutes) == 2):
            raise ValueError(f"expected HH:MM, got {value!r}")
        if int(hours) > 23 or int(minutes) > 59:
            raise ValueError(f"expected HH:MM, got {value!r}")
        return f"{int(hours):02d}:{minutes}"

    @property
    def start_minutes(self) -> int:
        hours, minutes = self.start_time.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def end_minutes(self) -> int:
        hours, minutes = self.end_time.split(":")
        return int(hours) * 60 + int(minutes)

    @property
    def duration(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def label(self) -> str:
        return f"{self.start_time}-{self.end_time}"


class StudentGroup(Record):
    id: str
    name: str = ""
    department: str = ""
    year: conint(ge=1) = 1
    size: conint(ge=1)
    electives: Tuple[str, ...] = ()


class Entry(Record):
    id: str = Field(
        description="Session id <course>:<group>:w<week>:s<index>; entries with other ids are "
        "matched to a free session of the same course, group and week"
    )
    course_id: str
    faculty_id: str
    classroom_id: str
    student_group_id: str
    time_slot_id: str
    day: conint(ge=1, le=7)
    week: conint(ge=1) = 1
    is_online: bool = False


# --- Configuration ---

class PeriodSpec(Record):
    start_time: str
    end_time: str
    is_break: bool = False


def _default_periods() -> Tuple[PeriodSpec, ...]:
    return (
        PeriodSpec(start_time="09:00", end_time="10:00"),
        PeriodSpec(start_time="10:00", end_time="11:00"),
        PeriodSpec(start_time="11:00", end_time="12:00"),
        PeriodSpec(start_time="12:00", end_time="13:00"),
        PeriodSpec(start_time="13:00", end_time="14:00", is_break=True),
        PeriodSpec(start_time="14:00", end_time="15:00"),
        PeriodSpec(start_time="15:00", end_time="16:00"),
        PeriodSpec(start_time="16:00", end_time="17:00"),
    )


class SlotGridConfig(Record):
    days: Tuple[conint(ge=1, le=7), ...] = (1, 2, 3, 4, 5)
    periods: Tuple[PeriodSpec, ...] = Field(default_factory=_default_periods)


class FacultyWorkload(Record):
    min_hours_per_week: conint(ge=0) = 8
    max_hours_per_week: conint(ge=0) = 40
    max_hours_per_day: conint(ge=0) = 8


class ClassroomUtilization(Record):
    min_utilization: confloat(ge=0, le=100) = 60
    max_utilization: confloat(ge=0, le=100) = 95


class StudentGaps(Record):
    max_gaps_per_day: conint(ge=0) = 2
    prefer_consecutive_slots: bool = True
    consecutive_weight: confloat(ge=0, le=1) = 0.2


class DepartmentPreference(Record):
    preferred_slots: Tuple[str, ...] = Field(default=(), description="Slot ids or HH:MM-HH:MM labels")
    avoided_slots: Tuple[str, ...] = ()


class ScoringWeights(Record):
    workload: confloat(ge=0) = 0.25
    utilization: confloat(ge=0) = 0.25
    gaps: confloat(ge=0) = 0.25
    department: confloat(ge=0) = 0.25
    travel: confloat(ge=0) = 0.1
    faculty_preference: confloat(ge=0) = 0.1


class ConflictThresholds(Record):
    workload_overload_pct: confloat(ge=0) = 10
    utilization_tolerance_pct: confloat(ge=0) = 5
    avoided_slot_pct: confloat(ge=0, le=100) = 0
    travel_cost_per_day: conint(ge=0) = Field(1, description="Floor change costs 1, building change 2")


class OptimizationConstraints(Record):
    faculty_workload: FacultyWorkload = FacultyWorkload()
    classroom_utilization: ClassroomUtilization = ClassroomUtilization()
    student_gaps: StudentGaps = StudentGaps()
    department_preferences: Dict[str, DepartmentPreference] = Field(default_factory=dict)
    weights: ScoringWeights = ScoringWeights()
    thresholds: ConflictThresholds = ConflictThresholds()
    allow_partial: bool = False


class SearchConfig(Record):
    max_iterations: conint(ge=1) = 1000
    population_size: conint(ge=2) = 50
    crossover_rate: confloat(ge=0, le=1) = 0.8
    mutation_rate: confloat(ge=0, le=1) = 0.1
    elitism_rate: confloat(ge=0, lt=1) = 0.1
    timeout_seconds: confloat(gt=0) = 300
    random_seed: Optional[int] = None
    stagnation_limit: conint(ge=1) = 100
    tournament_size: conint(ge=1) = 3
    result_size: conint(ge=1) = 3
    local_search_steps: conint(ge=0) = 20
    workers: conint(ge=1) = 1
    parallel_backend: Literal["thread", "process"] = "thread"
    parallel_threshold: conint(ge=1) = 64
    progress_interval: conint(ge=1) = 1
    progress_queue_size: conint(ge=1) = 16
    progress_drain_seconds: confloat(ge=0) = 5
    # soft scores stay within 0..100, so any penalty above 100 ranks infeasible below feasible
    infeasible_penalty: confloat(gt=100) = 1000
    violation_penalty: confloat(ge=0) = 10


# --- Output records ---

class Conflict(Record):
    type: ConflictType
    severity: Severity
    kind: ConflictKind
    description: str
    affected_entries: Tuple[str, ...] = ()


class ScheduleMetrics(Record):
    teacher_workload_balance: float
    classroom_utilization: float
    student_gaps: float
    department_satisfaction: float
    travel_efficiency: float
    faculty_preference: float
    conflict_count: int
    utilization_rate: float = Field(description="Occupied share of room-slot capacity, in percent")
    total_gaps: int
    travel_cost: int = 0


class Evaluation(Record):
    feasible: bool
    hard_violations: Tuple[Conflict, ...]
    soft_score: confloat(ge=0, le=100)
    metrics: ScheduleMetrics

    @property
    def hard_violation_count(self) -> int:
        return len(self.hard_violations)


class UnplacedSession(Record):
    entry_id: str
    course_id: str
    student_group_id: str
    week: int


class InfeasibleCourse(Record):
    course_id: str
    required_sessions: int
    unplaced_sessions: int
    entry_ids: Tuple[str, ...]


class CandidateSchedule(Record):
    id: str
    name: str
    rank: int
    entries: Tuple[Entry, ...]
    unplaced: Tuple[UnplacedSession, ...] = ()
    fitness: float
    soft_score: float
    feasible: bool
    metrics: ScheduleMetrics
    conflicts: Tuple[Conflict, ...] = ()
    generation: int
    constraints: OptimizationConstraints
    generated_by: Optional[str] = None
    status: str = "draft"


class SchedulingResult(Record):
    candidates: Tuple[CandidateSchedule, ...]
    termination: TerminationCause
    iterations: int
    best_fitness_history: Tuple[float, ...] = ()
    infeasible_courses: Tuple[InfeasibleCourse, ...] = ()
    seed: int
    elapsed_seconds: float = 0.0

    @property
    def best(self) -> Optional[CandidateSchedule]:
        return self.candidates[0] if self.candidates else None

    def raise_for_infeasible(self) -> None:
        if self.infeasible_courses:
            raise InfeasibleCourseError(list(self.infeasible_courses))


class ProgressReport(Record):
    generation: int
    best_fitness: float
    best_soft_score: float
    feasible: bool
    elapsed_seconds: float


# --- API payloads ---

class ScheduleRequest(BaseModel):
    courses: List[Course]
    faculty: List[Faculty]
    classrooms: List[Classroom]
    student_groups: List[StudentGroup]
    time_slots: Optional[List[TimeSlot]] = None
    slot_grid: SlotGridConfig = SlotGridConfig()
    constraints: OptimizationConstraints = OptimizationConstraints()
    search: SearchConfig = SearchConfig()
    name: str = "Timetable"
    generated_by: Optional[str] = None


class ScheduleResponse(BaseModel):
    run_id: str
    result: SchedulingResult


class AnalyzeRequest(ScheduleRequest):
    entries: List[Entry]
