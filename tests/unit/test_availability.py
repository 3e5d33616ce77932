from datetime import date, datetime

from timesync.models.interval import UnavailableInterval
from timesync.services.availability import (
    available_hours,
    day_part_coverage,
    half_hour_grid,
    is_available,
)


JUNE_15 = date(2024, 6, 15)


def test_date_without_entry_is_available_all_day():
    slots = {"20240614": [UnavailableInterval(start="00:00", end="23:59")]}

    for hour in range(24):
        for minute in (0, 30, 59):
            assert is_available(JUNE_15, f"{hour:02d}:{minute:02d}", slots)
    assert is_available(JUNE_15, "12:00", {})
    assert is_available(JUNE_15, "12:00", None)


def test_interval_end_is_exclusive():
    slots = {"20240615": [UnavailableInterval(start="14:00", end="16:00")]}

    assert not is_available(JUNE_15, "14:00", slots)
    assert not is_available(JUNE_15, "14:30", slots)
    assert not is_available(JUNE_15, "15:59", slots)
    assert is_available(JUNE_15, "16:00", slots)
    assert is_available(JUNE_15, "13:59", slots)


def test_overlapping_intervals_behave_as_union():
    slots = {"20240615": [
        UnavailableInterval(start="09:00", end="11:00"),
        UnavailableInterval(start="10:00", end="12:00"),
    ]}

    assert not is_available(JUNE_15, "10:30", slots)
    assert is_available(JUNE_15, "08:30", slots)
    assert not is_available(JUNE_15, "11:30", slots)
    assert is_available(JUNE_15, "12:00", slots)


def test_raw_store_dicts_are_accepted():
    slots = {"20240615": [{"start": "09:00", "end": "10:00"}, {"start": "18:00", "end": "23:59"}]}

    assert not is_available(JUNE_15, "9:00", slots)
    assert is_available(JUNE_15, "10:00", slots)
    assert not is_available(JUNE_15, "23:00", slots)


def test_available_hours_skips_blocked_hours():
    slots = {"20240615": [UnavailableInterval(start="09:00", end="12:00")]}

    hours = available_hours(JUNE_15, slots, now=datetime(2024, 6, 1, 8, 0))

    assert hours == set(range(24)) - {9, 10, 11}


def test_available_hours_excludes_past_hours_today():
    now = datetime(2024, 6, 15, 13, 45)

    hours = available_hours(JUNE_15, {}, now=now)

    assert hours == set(range(14, 24))
    assert all(hour > now.hour for hour in hours)


def test_available_hours_other_days_ignore_current_hour():
    hours = available_hours(date(2024, 6, 16), {}, now=datetime(2024, 6, 15, 13, 45))

    assert hours == set(range(24))


def test_day_part_coverage_counts_free_share_per_band():
    hours = {6, 7, 8, 12, 18, 19, 20, 21, 22, 23}

    coverage = day_part_coverage(hours)

    assert coverage == {"morning": 0.5, "afternoon": 1 / 6, "evening": 1.0}


def test_half_hour_grid_marks_blocks_and_past_cells():
    slots = {"20240615": [UnavailableInterval(start="10:00", end="11:30")]}

    grid = half_hour_grid(JUNE_15, slots, now=datetime(2024, 6, 15, 10, 15))
    cells = {cell.time: cell for cell in grid}

    assert len(grid) == 48
    assert not cells["10:00"].available and cells["10:00"].past
    assert not cells["11:00"].available and not cells["11:00"].past
    assert cells["11:30"].available
    assert cells["09:30"].past
