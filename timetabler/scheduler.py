"""Scheduler facade: validates inputs, drives the search and assembles the result."""

from __future__ import annotations
import logging
import random
import time
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from timetabler.conflicts import ConflictAnalyzer
from timetabler.constraints.checker import ConstraintChecker
from timetabler.ga.engine import CancelToken, GeneticAlgorithm, ProgressCallback
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Schedule
from timetabler.schemas import (
    CandidateSchedule,
    Classroom,
    Course,
    Faculty,
    InfeasibleCourse,
    OptimizationConstraints,
    SchedulingResult,
    SearchConfig,
    StudentGroup,
    TimeSlot,
    UnplacedSession,
)

logger = logging.getLogger(__name__)

SEED_RANGE = 2**32


class Scheduler:
    """
    Runs one scheduling job from plain input records to a ranked result.

    A Scheduler holds no state between runs; every call to ``run`` builds
    its own problem, random generator and population, so independent runs
    can proceed concurrently on separate threads or processes.
    """

    def run(
        self,
        courses: Sequence[Course],
        faculty: Sequence[Faculty],
        classrooms: Sequence[Classroom],
        groups: Sequence[StudentGroup],
        time_slots: Sequence[TimeSlot],
        constraints: Optional[OptimizationConstraints] = None,
        search: Optional[SearchConfig] = None,
        *,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
        name: str = "Timetable",
        generated_by: Optional[str] = None,
    ) -> SchedulingResult:
        """
        Schedule every session of the given courses.

        Args:
            courses, faculty, classrooms, groups, time_slots: Input records.
            constraints: Soft-constraint bounds, weights and thresholds.
            search: Genetic algorithm settings; ``random_seed`` makes the run reproducible.
            progress: Called with a ProgressReport after every ``progress_interval`` generations.
            cancel: Object with ``is_set()``, checked between generations.
            name: Base name of the generated timetables.
            generated_by: Opaque identity of the requester, copied onto every candidate.

        Returns:
            SchedulingResult with the best candidates ranked by fitness.

        Raises:
            ConfigurationError: If the inputs cannot produce a schedule; raised before any search.
        """
        search = search or SearchConfig()
        problem = SchedulingProblem(courses, faculty, classrooms, groups, time_slots, constraints)
        problem.validate()

        seed = search.random_seed
        if seed is None:
            seed = random.SystemRandom().randrange(SEED_RANGE)
        logger.info(
            f"Scheduling {problem.session_count} sessions of {len(problem.courses)} courses "
            f"(population {search.population_size}, seed {seed})"
        )

        started = time.perf_counter()
        checker = ConstraintChecker(problem)
        engine = GeneticAlgorithm(
            problem,
            search,
            random.Random(seed),
            checker=checker,
            progress=progress,
            cancel=cancel,
        )
        outcome = engine.run()

        analyzer = ConflictAnalyzer(problem)
        candidates = tuple(
            self._candidate(
                rank,
                schedule,
                problem,
                analyzer,
                id=f"{seed:08x}-{rank}",
                name=f"{name} #{rank}",
                generated_by=generated_by,
            )
            for rank, schedule in enumerate(outcome.hall_of_fame, start=1)
        )
        infeasible = self._infeasible_courses(problem, outcome.hall_of_fame[0]) if outcome.hall_of_fame else ()
        for course in infeasible:
            logger.warning(
                f"Course {course.course_id}: {course.unplaced_sessions} of {course.required_sessions} "
                f"sessions could not be placed"
            )
        elapsed = time.perf_counter() - started
        logger.info(
            f"Run finished ({outcome.termination.value}) after {outcome.generations} generations "
            f"in {elapsed:.2f}s; best fitness {candidates[0].fitness:.2f}"
        )
        return SchedulingResult(
            candidates=candidates,
            termination=outcome.termination,
            iterations=outcome.generations,
            best_fitness_history=tuple(outcome.history),
            infeasible_courses=infeasible,
            seed=seed,
            elapsed_seconds=elapsed,
        )

    @staticmethod
    def _candidate(
        rank: int,
        schedule: Schedule,
        problem: SchedulingProblem,
        analyzer: ConflictAnalyzer,
        id: str,
        name: str,
        generated_by: Optional[str],
    ) -> CandidateSchedule:
        evaluation = schedule.evaluation
        unplaced = tuple(
            UnplacedSession(
                entry_id=session_id,
                course_id=problem.sessions_by_id[session_id].course.id,
                student_group_id=problem.sessions_by_id[session_id].group.id,
                week=problem.sessions_by_id[session_id].week,
            )
            for session_id in schedule.unplaced
        )
        return CandidateSchedule(
            id=id,
            name=name,
            rank=rank,
            entries=tuple(schedule.entries),
            unplaced=unplaced,
            fitness=schedule.fitness,
            soft_score=evaluation.soft_score,
            feasible=evaluation.feasible,
            metrics=evaluation.metrics,
            conflicts=tuple(analyzer.analyze(schedule)),
            generation=schedule.generation,
            constraints=problem.constraints,
            generated_by=generated_by,
        )

    @staticmethod
    def _infeasible_courses(problem: SchedulingProblem, best: Schedule) -> tuple:
        unplaced: Dict[str, List[str]] = defaultdict(list)
        for session_id in best.unplaced:
            unplaced[problem.sessions_by_id[session_id].course.id].append(session_id)
        required: Dict[str, int] = defaultdict(int)
        for session in problem.sessions:
            required[session.course.id] += 1
        return tuple(
            InfeasibleCourse(
                course_id=course_id,
                required_sessions=required[course_id],
                unplaced_sessions=len(ids),
                entry_ids=tuple(ids),
            )
            for course_id, ids in sorted(unplaced.items())
        )
