"""Time slot grid generation and lookup helpers."""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from timetabler.schemas import SlotGridConfig, TimeSlot

DAY_NAMES = {
    1: "monday",
    2: "tuesday",
    3: "wednesday",
    4: "thursday",
    5: "friday",
    6: "saturday",
    7: "sunday",
}


def slot_id(day: int, period: int) -> str:
    """Stable id of the slot at (day, period), e.g. ``d1p0``."""
    return f"d{day}p{period}"


def build_time_slots(config: Optional[SlotGridConfig] = None) -> List[TimeSlot]:
    """
    Build the weekly slot grid as the Cartesian product of days and daily periods.

    Args:
        config: Grid configuration. Defaults to Monday-Friday, 09:00-17:00
                in hourly periods with a lunch break at 13:00.

    Returns:
        Slots ordered by (day, period).
    """
    config = config or SlotGridConfig()
    slots: List[TimeSlot] = []
    for day in sorted(set(config.days)):
        for period, spec in enumerate(config.periods):
            slots.append(
                TimeSlot(
                    id=slot_id(day, period),
                    day=day,
                    period=period,
                    start_time=spec.start_time,
                    end_time=spec.end_time,
                    is_break=spec.is_break,
                )
            )
    return slots


def periods_by_day(slots: Iterable[TimeSlot]) -> Dict[int, List[int]]:
    """Assignable (non-break) periods of each day, sorted."""
    result: Dict[int, List[int]] = {}
    for slot in slots:
        if slot.is_break:
            continue
        result.setdefault(slot.day, []).append(slot.period)
    for periods in result.values():
        periods.sort()
    return result


def slot_matches(slot: TimeSlot, references: Iterable[str]) -> bool:
    """True when a preference list names the slot by id or by its HH:MM-HH:MM label."""
    for ref in references:
        if ref == slot.id or ref == slot.label:
            return True
    return False


def describe_slot(slot: TimeSlot) -> str:
    return f"{DAY_NAMES.get(slot.day, str(slot.day))} {slot.label}"
