from datetime import datetime

import pytest

from kidrewards.models import Child
from kidrewards.seasons import (
    Clock,
    FixedClock,
    days_until_birthday,
    days_until_christmas,
    is_birthday_month,
    is_birthday_season,
    is_christmas_season,
    month_key,
    month_start,
    perfect_week_window,
    week_bounds,
)


def test_birthday_month_matches_current_month_only() -> None:
    child = Child(id="ava", birth_month=6)

    assert is_birthday_month(child, datetime(2026, 6, 15))
    assert not is_birthday_month(child, datetime(2026, 5, 31))
    assert not is_birthday_month(Child(id="ben"), datetime(2026, 6, 15))


def test_birthday_season_includes_previous_month_with_wraparound() -> None:
    january = Child(id="ava", birth_month=1)

    assert is_birthday_season(january, datetime(2026, 12, 3))
    assert is_birthday_season(january, datetime(2027, 1, 20))
    assert not is_birthday_season(january, datetime(2027, 2, 1))
    assert not is_birthday_season(Child(id="ben"), datetime(2026, 12, 3))


def test_christmas_season_runs_november_through_christmas_eve() -> None:
    assert is_christmas_season(datetime(2026, 11, 1))
    assert is_christmas_season(datetime(2026, 12, 24, 23, 59))
    assert not is_christmas_season(datetime(2026, 12, 25))
    assert not is_christmas_season(datetime(2026, 10, 31))


def test_days_until_birthday_counts_whole_days_to_midnight() -> None:
    child = Child(id="ava", birth_month=6)

    assert days_until_birthday(child, datetime(2026, 5, 30, 18, 0)) == 1
    assert days_until_birthday(child, datetime(2026, 5, 31, 18, 0)) == 0
    assert days_until_birthday(child, datetime(2026, 6, 1)) == 0
    assert days_until_birthday(Child(id="ben"), datetime(2026, 6, 2)) is None


def test_days_until_birthday_rolls_once_midnight_has_passed() -> None:
    child = Child(id="ava", birth_month=6)

    assert days_until_birthday(child, datetime(2026, 6, 1, 9, 30)) == 364
    assert days_until_birthday(child, datetime(2026, 6, 2)) == 364


def test_days_until_christmas() -> None:
    assert days_until_christmas(datetime(2026, 12, 24)) == 1
    assert days_until_christmas(datetime(2026, 10, 19, 12, 0)) == 66
    assert days_until_christmas(datetime(2026, 12, 25)) == 0
    assert days_until_christmas(datetime(2026, 12, 25, 10, 0)) == 364
    assert days_until_christmas(datetime(2026, 12, 26)) == 364


def test_month_helpers() -> None:
    now = datetime(2026, 10, 19, 15, 45)

    assert month_start(now) == datetime(2026, 10, 1)
    assert month_key(now) == "2026-10"


def test_week_bounds_are_monday_to_sunday() -> None:
    start, end = week_bounds(datetime(2026, 10, 21, 13, 0))

    assert start == datetime(2026, 10, 19)
    assert end.date() == datetime(2026, 10, 25).date()
    assert (end.hour, end.minute, end.second) == (23, 59, 59)


def test_perfect_week_window_only_on_sunday_or_monday() -> None:
    sunday = perfect_week_window(datetime(2026, 10, 18, 20, 0))
    monday = perfect_week_window(datetime(2026, 10, 19, 7, 0))

    assert sunday is not None and sunday[0] == datetime(2026, 10, 12)
    assert monday is not None and monday[0] == datetime(2026, 10, 12)
    assert perfect_week_window(datetime(2026, 10, 21, 12, 0)) is None


def test_fixed_clock_can_be_moved() -> None:
    clock = FixedClock(datetime(2026, 10, 19, 8, 0))

    assert clock.now() == datetime(2026, 10, 19, 8, 0)
    assert clock.advance(days=1) == datetime(2026, 10, 20, 8, 0)
    clock.set(datetime(2027, 1, 1))
    assert clock.now() == datetime(2027, 1, 1)


def test_clock_is_abstract() -> None:
    with pytest.raises(TypeError):
        Clock()
