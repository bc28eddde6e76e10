"""Calendar helpers: birthday and Christmas seasons plus bonus windows.

Every function takes ``now`` explicitly. Callers obtain it from a
:class:`Clock` so tests can pin the date instead of relying on the wall clock.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from typing import Optional, Tuple

from .models import Child


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current moment."""


class SystemClock(Clock):
    """Wall clock in local time."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock frozen at a given moment, movable by tests."""

    def __init__(self, moment: datetime) -> None:
        self._moment = moment

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = moment

    def advance(self, **delta: float) -> datetime:
        self._moment = self._moment + timedelta(**delta)
        return self._moment


def _previous_month(month: int) -> int:
    return 12 if month == 1 else month - 1


def is_birthday_month(child: Child, now: datetime) -> bool:
    if not child.birth_month:
        return False
    return now.month == child.birth_month


def is_birthday_season(child: Child, now: datetime) -> bool:
    """True during the birth month and the month before it."""

    if not child.birth_month:
        return False
    return now.month in (child.birth_month, _previous_month(child.birth_month))


def is_christmas_season(now: datetime) -> bool:
    """True from 1 November through 24 December."""

    return now.month == 11 or (now.month == 12 and now.day <= 24)


def _whole_days_until(month: int, day: int, now: datetime) -> int:
    """Whole days from ``now`` to the next midnight starting ``month``/``day``.

    The target rolls to next year as soon as its midnight has passed, so any
    time after midnight on the day itself counts toward next year.
    """

    target = datetime(now.year, month, day, tzinfo=now.tzinfo)
    if target < now:
        target = target.replace(year=now.year + 1)
    return math.floor((target - now).total_seconds() / 86400)


def days_until_birthday(child: Child, now: datetime) -> Optional[int]:
    """Days until the 1st of the birth month; ``None`` without a birth month.

    Only the birth month is stored, so the 1st stands in for the birthday.
    """

    if not child.birth_month:
        return None
    return _whole_days_until(child.birth_month, 1, now)


def days_until_christmas(now: datetime) -> int:
    return _whole_days_until(12, 25, now)


def month_start(now: datetime) -> datetime:
    return datetime.combine(now.date().replace(day=1), time())


def month_key(now: datetime) -> str:
    return f"{now.year:04d}-{now.month:02d}"


def week_start(moment: datetime) -> datetime:
    """Monday 00:00 of the week containing ``moment``."""

    monday = moment.date() - timedelta(days=moment.weekday())
    return datetime.combine(monday, time())


def week_bounds(start: datetime) -> Tuple[datetime, datetime]:
    """Inclusive bounds of the week starting at ``start`` (Monday to Sunday)."""

    begin = week_start(start)
    end = datetime.combine(begin.date() + timedelta(days=6), time.max)
    return begin, end


def perfect_week_window(now: datetime) -> Optional[Tuple[datetime, datetime]]:
    """Week to judge for the perfect week bonus, or ``None`` mid-week.

    On Sunday the current week is judged; on Monday the week that just ended.
    """

    weekday = now.weekday()
    if weekday == 6:
        return week_bounds(now)
    if weekday == 0:
        return week_bounds(now - timedelta(days=7))
    return None


__all__ = [
    "Clock",
    "SystemClock",
    "FixedClock",
    "is_birthday_month",
    "is_birthday_season",
    "is_christmas_season",
    "days_until_birthday",
    "days_until_christmas",
    "month_start",
    "month_key",
    "week_start",
    "week_bounds",
    "perfect_week_window",
]
