import pytest
from pydantic import ValidationError

from timetabler.schemas import PeriodSpec, SlotGridConfig, TimeSlot
from timetabler.slots import build_time_slots, describe_slot, periods_by_day, slot_matches


def test_default_grid():
    slots = build_time_slots()
    assert len(slots) == 40  # 5 days x 8 hourly periods
    breaks = [s for s in slots if s.is_break]
    assert len(breaks) == 5
    assert {s.label for s in breaks} == {"13:00-14:00"}
    assert slots[0].id == "d1p0"
    assert slots[-1].id == "d5p7"
    assert all(s.duration == 60 for s in slots)


def test_slots_are_ordered_by_day_then_period():
    config = SlotGridConfig(
        days=(3, 1),
        periods=(PeriodSpec(start_time="08:30", end_time="10:00"), PeriodSpec(start_time="10:15", end_time="11:45")),
    )
    slots = build_time_slots(config)
    assert [(s.day, s.period) for s in slots] == [(1, 0), (1, 1), (3, 0), (3, 1)]
    assert slots[0].duration == 90


def test_periods_by_day_skips_breaks():
    assert periods_by_day(build_time_slots())[1] == [0, 1, 2, 3, 5, 6, 7]


def test_clock_times_are_normalised():
    slot = TimeSlot(id="x", day=2, period=0, start_time="9:00", end_time="10:30")
    assert slot.label == "09:00-10:30"
    assert slot.start_minutes == 540
    assert describe_slot(slot) == "tuesday 09:00-10:30"


@pytest.mark.parametrize("value", ["25:00", "9", "09:5", "ab:cd"])
def test_bad_clock_times_are_rejected(value):
    with pytest.raises(ValidationError):
        TimeSlot(id="x", day=1, period=0, start_time=value, end_time="10:00")


def test_slot_matches_id_or_label():
    slot = build_time_slots()[1]
    assert slot_matches(slot, ["d1p1"])
    assert slot_matches(slot, ["10:00-11:00"])
    assert not slot_matches(slot, ["d2p1", "09:00-10:00"])
