from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from timetabler.conflicts import ConflictAnalyzer
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.scheduler import Scheduler
from timetabler.schemas import AnalyzeRequest, Conflict, ScheduleRequest, SchedulingResult, TimeSlot
from timetabler.slots import build_time_slots

logger = logging.getLogger(__name__)


@dataclass
class State:
    results: Dict[str, SchedulingResult] = field(default_factory=dict)  # run_id -> result


class TimetableService:
    def __init__(self, scheduler: Optional[Scheduler] = None) -> None:
        self.scheduler = scheduler or Scheduler()
        self.state = State()

    @staticmethod
    def _slots(req: ScheduleRequest) -> List[TimeSlot]:
        if req.time_slots is not None:
            return list(req.time_slots)
        return build_time_slots(req.slot_grid)

    def generate(self, req: ScheduleRequest) -> tuple[str, SchedulingResult]:
        result = self.scheduler.run(
            req.courses,
            req.faculty,
            req.classrooms,
            req.student_groups,
            self._slots(req),
            req.constraints,
            req.search,
            name=req.name,
            generated_by=req.generated_by,
        )
        run_id = uuid.uuid4().hex
        self.state.results[run_id] = result
        logger.info(f"Stored run {run_id} with {len(result.candidates)} candidates")
        return run_id, result

    def get_result(self, run_id: str) -> Optional[SchedulingResult]:
        return self.state.results.get(run_id)

    def analyze(self, req: AnalyzeRequest) -> List[Conflict]:
        problem = SchedulingProblem(
            req.courses,
            req.faculty,
            req.classrooms,
            req.student_groups,
            self._slots(req),
            req.constraints,
        )
        ids = [entry.id for entry in req.entries]
        if len(ids) != len(set(ids)):
            raise ValueError("Entry ids must be unique")
        for entry in req.entries:
            slot = problem.slots.get(entry.time_slot_id)
            if slot is not None and slot.day != entry.day:
                raise ValueError(f"Entry {entry.id} says day {entry.day} but slot {slot.id} is on day {slot.day}")
        return ConflictAnalyzer(problem).analyze(Schedule.from_entries(problem, req.entries))
