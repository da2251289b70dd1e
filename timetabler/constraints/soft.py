"""Soft constraint sub-metrics.

Each metric maps aggregated schedule statistics to a 0..100 score (higher
is better). The inputs are integer aggregates so that an incrementally
maintained state and a full recount produce the very same score.
"""

from __future__ import annotations
import math
from typing import Dict, Iterable, Sequence, Set, Tuple

from timetabler.schemas import Classroom, Faculty, FacultyWorkload, ScoringWeights, StudentGaps


def workload_band(faculty: Faculty, settings: FacultyWorkload) -> Tuple[int, int]:
    """Weekly [low, high] band in minutes for one faculty member."""
    high = min(settings.max_hours_per_week, faculty.max_load_per_week) * 60
    low = min(settings.min_hours_per_week * 60, high)
    return low, high


def daily_limit(faculty: Faculty, settings: FacultyWorkload) -> int:
    return min(settings.max_hours_per_day, faculty.max_load_per_day) * 60


def band_deviation(minutes: int, low: int, high: int) -> int:
    if minutes < low:
        return low - minutes
    if minutes > high:
        return minutes - high
    return 0


def workload_score(squared_deviation: int, daily_overload: int, units: int) -> float:
    """
    Faculty workload balance.

    Args:
        squared_deviation: Sum over (faculty, week) of the squared distance,
                           in minutes, of the weekly load from its band.
        daily_overload: Sum over (faculty, day, week) of minutes beyond the daily limit.
        units: Number of (faculty, week) pairs.
    """
    if units == 0:
        return 100.0
    penalty = (squared_deviation / 3600.0 + daily_overload / 60.0) / units
    return 100.0 / (1.0 + penalty)


def utilization_rate(occupied: int, capacity: int) -> float:
    if capacity <= 0:
        return 0.0
    return 100.0 * occupied / capacity


def utilization_score(rate: float, low: float, high: float) -> float:
    if rate < low:
        return 100.0 * rate / low
    if rate > high:
        if high >= 100.0:
            return 0.0
        return 100.0 * (100.0 - rate) / (100.0 - high)
    return 100.0


def day_gaps(periods: Sequence[int], occupied: Iterable[int]) -> int:
    """Idle assignable periods between the first and the last occupied one."""
    taken = set(occupied)
    if not taken:
        return 0
    first, last = min(taken), max(taken)
    return sum(1 for p in periods if first < p < last and p not in taken)


def gap_score(total_gaps: int, total_excess: int, active_days: int, zero_gap_days: int, settings: StudentGaps) -> float:
    if active_days == 0:
        return 100.0
    base = 100.0 / (1.0 + (total_gaps + total_excess) / active_days)
    if not settings.prefer_consecutive_slots:
        return base
    share = settings.consecutive_weight
    return (1.0 - share) * base + share * 100.0 * zero_gap_days / active_days


def department_score(stats: Iterable[Tuple[int, int, int]]) -> float:
    """
    Department preference satisfaction.

    Args:
        stats: (entries, in_preferred, in_avoided) for each department that has preferences.
    """
    ratios = [(preferred - avoided) / total for total, preferred, avoided in stats if total > 0]
    if not ratios:
        return 100.0
    return 50.0 * (1.0 + math.fsum(ratios) / len(ratios))


def faculty_preference_score(stats: Iterable[Tuple[int, int]]) -> float:
    """Mean share of entries in preferred hours over (entries, in_preferred) per faculty member."""
    shares = [preferred / total for total, preferred in stats if total > 0]
    if not shares:
        return 100.0
    return 100.0 * math.fsum(shares) / len(shares)


def move_cost(origin: Classroom, target: Classroom) -> int:
    if origin.building != target.building:
        return 2
    if origin.floor != target.floor:
        return 1
    return 0


def day_travel(placements: Iterable[Tuple[int, str]], rooms: Dict[str, Classroom]) -> Tuple[int, int]:
    """
    Travel between back-to-back sessions of one group or faculty member on one day.

    Args:
        placements: (period, room id) pairs of the day.
        rooms: Classroom index.

    Returns:
        (cost, links): summed move cost and number of back-to-back period pairs.
    """
    by_period: Dict[int, Set[str]] = {}
    for period, room_id in placements:
        by_period.setdefault(period, set()).add(room_id)
    cost = links = 0
    for period in sorted(by_period):
        following = by_period.get(period + 1)
        if not following:
            continue
        links += 1
        cost += min(move_cost(rooms[a], rooms[b]) for a in by_period[period] for b in following)
    return cost, links


def travel_score(cost: int, links: int) -> float:
    if links == 0:
        return 100.0
    return 100.0 * (1.0 - cost / (2.0 * links))


def combine(scores: Dict[str, float], weights: ScoringWeights) -> float:
    pairs = [
        (weights.workload, scores["workload"]),
        (weights.utilization, scores["utilization"]),
        (weights.gaps, scores["gaps"]),
        (weights.department, scores["department"]),
        (weights.travel, scores["travel"]),
        (weights.faculty_preference, scores["faculty_preference"]),
    ]
    total_weight = math.fsum(w for w, _ in pairs)
    if total_weight <= 0:
        return 0.0
    score = math.fsum(w * s for w, s in pairs) / total_weight
    return min(100.0, max(0.0, score))
