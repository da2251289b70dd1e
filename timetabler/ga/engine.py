from __future__ import annotations
import logging
import random
import time
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set, Tuple

from timetabler.constraints.checker import ConstraintChecker
from timetabler.ga.placement import place, reassign_faculty
from timetabler.ga.progress import ProgressCallback, ProgressRelay
from timetabler.problem import SchedulingProblem
from timetabler.schedule import Occupancy, Schedule
from timetabler.schemas import Evaluation, ProgressReport, SearchConfig, TerminationCause

logger = logging.getLogger(__name__)

# Fitness gains smaller than this do not count as improvement.
EPSILON = 1e-9


class CancelToken(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class EngineOutcome:
    hall_of_fame: List[Schedule]
    termination: TerminationCause
    generations: int
    history: List[float] = field(default_factory=list)


class GeneticAlgorithm:
    def __init__(
        self,
        problem: SchedulingProblem,
        config: SearchConfig,
        rng: random.Random,
        checker: Optional[ConstraintChecker] = None,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.problem = problem
        self.config = config
        self.rng = rng
        self.checker = checker or ConstraintChecker(problem)
        self.progress = progress
        self.cancel = cancel
        self.order = problem.placement_order()
        self.course_ids = sorted(problem.courses)
        self.population_size = config.population_size
        self.mutation_rate = config.mutation_rate
        self.crossover_rate = config.crossover_rate
        self.elite_count = min(self.population_size - 1, max(1, round(config.elitism_rate * self.population_size)))
        self._hall: Dict[Tuple, Schedule] = {}
        self._relay: Optional[ProgressRelay] = None

    # --- Public API ---
    def run(self) -> EngineOutcome:
        started = time.perf_counter()
        executor = self._executor()
        if self.progress is not None:
            self._relay = ProgressRelay(
                self.progress, self.config.progress_queue_size, self.config.progress_drain_seconds
            )
        try:
            population = self._init_population()
            self._evaluate_population(population, executor)
            self._polish_best(population, 0)
            best_fitness = self._best(population).fitness
            history = [best_fitness]
            self._remember(population)
            self._report(0, population, started)

            generation = 0
            stagnant = 0
            termination = TerminationCause.MAX_ITERATIONS
            while generation < self.config.max_iterations:
                if self.cancel is not None and self.cancel.is_set():
                    termination = TerminationCause.CANCELLED
                    break
                if time.perf_counter() - started >= self.config.timeout_seconds:
                    termination = TerminationCause.TIMEOUT
                    break
                generation += 1
                population = self._next_generation(population, generation)
                self._evaluate_population(population, executor)
                self._polish_best(population, generation)

                current = self._best(population).fitness
                if current > best_fitness + EPSILON:
                    best_fitness = current
                    stagnant = 0
                else:
                    stagnant += 1
                history.append(current)
                self._remember(population)
                if generation % self.config.progress_interval == 0:
                    self._report(generation, population, started)
                logger.debug(f"Generation {generation}: best fitness {current:.3f} (stagnant {stagnant})")
                if stagnant >= self.config.stagnation_limit:
                    termination = TerminationCause.STAGNATION
                    break
        finally:
            if executor is not None:
                executor.shutdown()
            if self._relay is not None:
                self._relay.close()
                self._relay = None

        logger.info(f"Search stopped after {generation} generations: {termination.value}")
        return EngineOutcome(
            hall_of_fame=self._ranked(list(self._hall.values())),
            termination=termination,
            generations=generation,
            history=history,
        )

    def fitness(self, evaluation: Evaluation) -> float:
        """Soft score, pushed below every feasible candidate when hard constraints are broken."""
        if evaluation.feasible:
            return evaluation.soft_score
        penalty = self.config.infeasible_penalty + self.config.violation_penalty * evaluation.hard_violation_count
        return evaluation.soft_score - penalty

    # --- GA internals ---
    def _init_population(self) -> List[Schedule]:
        population: List[Schedule] = []
        for _ in range(self.population_size):
            schedule = Schedule.empty(self.problem, generation=0)
            occupancy = Occupancy()
            for session in self.order:
                entry = place(self.problem, session, occupancy, self.rng)
                if entry is not None:
                    schedule.assignments[session.id] = entry
                    occupancy.add(entry)
            population.append(schedule)
        return population

    def _evaluate_population(self, population: List[Schedule], executor: Optional[Executor]) -> None:
        pending = [schedule for schedule in population if schedule.evaluation is None]
        if executor is not None and len(pending) >= self.config.parallel_threshold:
            # map() yields in submission order, so results line up with candidates
            chunksize = max(1, len(pending) // (self.config.workers * 4))
            evaluations = list(executor.map(self.checker.evaluate, pending, chunksize=chunksize))
        else:
            evaluations = [self.checker.evaluate(schedule) for schedule in pending]
        for schedule, evaluation in zip(pending, evaluations):
            schedule.evaluation = evaluation
            schedule.fitness = self.fitness(evaluation)

    def _next_generation(self, population: List[Schedule], generation: int) -> List[Schedule]:
        ranked = self._ranked(population)
        new_pop: List[Schedule] = [schedule.copy() for schedule in ranked[: self.elite_count]]
        while len(new_pop) < self.population_size:
            parent1 = self._tournament(population)
            parent2 = self._tournament(population)
            if self.rng.random() < self.crossover_rate:
                child1, child2 = self._crossover(parent1, parent2, generation)
            else:
                child1, child2 = parent1.copy(generation), parent2.copy(generation)
            self._mutate(child1)
            self._mutate(child2)
            new_pop.append(child1)
            if len(new_pop) < self.population_size:
                new_pop.append(child2)
        return new_pop

    def _tournament(self, population: List[Schedule]) -> Schedule:
        k = min(self.config.tournament_size, len(population))
        competitors = self.rng.sample(population, k)
        return max(competitors, key=lambda schedule: schedule.fitness)

    def _crossover(self, parent1: Schedule, parent2: Schedule, generation: int) -> Tuple[Schedule, Schedule]:
        """Swap the assignments of a random half of the courses, then repair collisions."""
        half = set(self.rng.sample(self.course_ids, len(self.course_ids) // 2))
        return (
            self._combine(parent1, parent2, half, generation),
            self._combine(parent2, parent1, half, generation),
        )

    def _combine(self, first: Schedule, second: Schedule, half: Set[str], generation: int) -> Schedule:
        child = Schedule.empty(self.problem, generation=generation)
        occupancy = Occupancy()
        broken: Set[str] = set()
        for session in self.problem.sessions:
            source = first if session.course.id in half else second
            entry = source.assignments.get(session.id)
            if entry is None or occupancy.collides(entry):
                broken.add(session.id)
                continue
            entry = entry.model_copy()
            child.assignments[session.id] = entry
            occupancy.add(entry)
        for session in self.order:
            if session.id not in broken:
                continue
            entry = place(self.problem, session, occupancy, self.rng)
            if entry is not None:
                child.assignments[session.id] = entry
                occupancy.add(entry)
        return child

    def _mutate(self, schedule: Schedule) -> None:
        occupancy = Occupancy()
        for entry in schedule.entries:
            occupancy.add(entry)
        changed = False
        for session in self.problem.sessions:
            entry = schedule.assignments[session.id]
            if entry is None:
                # unplaced sessions get another chance every time
                entry = place(self.problem, session, occupancy, self.rng)
                if entry is not None:
                    schedule.assignments[session.id] = entry
                    occupancy.add(entry)
                    changed = True
                continue
            if self.rng.random() >= self.mutation_rate:
                continue
            occupancy.remove(entry)
            if len(self.problem.eligible_faculty[session.course.id]) > 1 and self.rng.random() < 0.5:
                mutated = reassign_faculty(self.problem, entry, occupancy, self.rng)
            else:
                mutated = place(self.problem, session, occupancy, self.rng, faculty_id=entry.faculty_id)
            if mutated is not None and mutated != entry:
                entry = mutated
                changed = True
            schedule.assignments[session.id] = entry
            occupancy.add(entry)
        if changed:
            schedule.evaluation = None
            schedule.fitness = None

    def _polish_best(self, population: List[Schedule], generation: int) -> None:
        """Hill-climb the best candidate with single-session moves scored incrementally."""
        steps = self.config.local_search_steps
        if steps == 0 or not self.problem.sessions:
            return
        best = self._best(population)
        candidate = best.copy(generation)
        state = self.checker.track(candidate)
        current = best.fitness
        evaluation = best.evaluation
        improved = False
        for _ in range(steps):
            session = self.rng.choice(self.problem.sessions)
            old = candidate.assignments[session.id]
            if old is None:
                new = place(self.problem, session, state, self.rng)
                if new is None:
                    continue
                trial = self.checker.evaluate_delta(state, added=new)
            else:
                keep_faculty = old.faculty_id if self.rng.random() < 0.5 else None
                state.remove(old)
                new = place(self.problem, session, state, self.rng, faculty_id=keep_faculty)
                state.add(old)
                if new is None:
                    continue
                trial = self.checker.evaluate_delta(state, added=new, removed=old)
            score = self.fitness(trial)
            if score > current + EPSILON:
                candidate.assignments[session.id] = new
                current = score
                evaluation = trial
                improved = True
                continue
            state.remove(new)
            if old is not None:
                state.add(old)
        if improved:
            candidate.evaluation = evaluation
            candidate.fitness = current
            position = next(i for i, schedule in enumerate(population) if schedule is best)
            population[position] = candidate

    # --- Helpers ---
    @staticmethod
    def _ranked(population: List[Schedule]) -> List[Schedule]:
        return sorted(population, key=lambda schedule: (-schedule.fitness, schedule.generation))

    @staticmethod
    def _best(population: List[Schedule]) -> Schedule:
        return max(population, key=lambda schedule: schedule.fitness)

    def _remember(self, population: List[Schedule]) -> None:
        """Keep the best distinct candidates seen so far."""
        for schedule in population:
            self._hall.setdefault(schedule.signature(), schedule)
        keep = self._ranked(list(self._hall.values()))[: self.config.result_size]
        self._hall = {schedule.signature(): schedule for schedule in keep}

    def _executor(self) -> Optional[Executor]:
        if self.config.workers <= 1:
            return None
        if self.config.parallel_backend == "process":
            # workers receive a pickled copy of the checker and problem
            return ProcessPoolExecutor(max_workers=self.config.workers)
        return ThreadPoolExecutor(max_workers=self.config.workers)

    def _report(self, generation: int, population: List[Schedule], started: float) -> None:
        if self._relay is None:
            return
        best = self._best(population)
        report = ProgressReport(
            generation=generation,
            best_fitness=best.fitness,
            best_soft_score=best.evaluation.soft_score,
            feasible=best.evaluation.feasible,
            elapsed_seconds=time.perf_counter() - started,
        )
        self._relay.publish(report)
