"""Bonus eligibility checks run after every approved chore completion.

Checkers are pure decisions over a :class:`FamilyBonusConfig`, a
:class:`Child` and a materialized :class:`CompletionHistory`. They never touch
storage; the caller loads the history and pushes awards through
:class:`kidrewards.awards.IdempotencyGuard`.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Collection, FrozenSet, List, Optional, Sequence, Tuple
from uuid import uuid4

from .config import MONTHLY_MILESTONES
from .models import BonusResult, BonusType, Child, CompletionHistory, FamilyBonusConfig
from .seasons import Clock, SystemClock, is_birthday_month, month_key, perfect_week_window

Decision = Optional[Tuple[str, str]]


def achievement_key(child_id: str, total: int) -> str:
    return f"achievement:{child_id}:{total}"


def birthday_key(child_id: str, now: datetime) -> str:
    return f"birthday:{child_id}:{month_key(now)}"


def perfect_week_key(child_id: str, week_start: datetime) -> str:
    return f"perfect_week:{child_id}:{week_start.date().isoformat()}"


def monthly_key(child_id: str, now: datetime, count: int) -> str:
    return f"monthly:{child_id}:{month_key(now)}:{count}"


def surprise_key(child_id: str, event: str) -> str:
    return f"surprise:{child_id}:{event}"


def candidate_keys(
    child_id: str,
    *,
    total_approved: int,
    monthly_approved: int,
    now: datetime,
    completion_id: str | None = None,
) -> FrozenSet[str]:
    """Every dedup key the checkers could produce for this evaluation.

    Storage only needs to look these up, not the child's whole award history.
    """

    keys = {
        achievement_key(child_id, total_approved),
        birthday_key(child_id, now),
        monthly_key(child_id, now, monthly_approved),
    }
    window = perfect_week_window(now)
    if window is not None:
        keys.add(perfect_week_key(child_id, window[0]))
    if completion_id:
        keys.add(surprise_key(child_id, completion_id))
    return frozenset(keys)


class BonusChecker(ABC):
    """Shared shape of every bonus: settings, eligibility, dedup, amounts.

    Subclasses implement :meth:`evaluate`, returning ``(dedup_key, reason)``
    when the child is eligible in the current window and ``None`` otherwise.
    """

    bonus_type: BonusType

    def check(
        self,
        config: FamilyBonusConfig | None,
        child: Child,
        history: CompletionHistory,
        now: datetime,
        *,
        completion_id: str | None = None,
    ) -> BonusResult:
        if config is None:
            return BonusResult.not_eligible(self.bonus_type, "No bonus configuration")
        settings = config.settings_for(self.bonus_type)
        if not settings.enabled:
            return BonusResult.not_eligible(self.bonus_type, "Disabled")
        decision = self.evaluate(config, child, history, now, completion_id=completion_id)
        if decision is None:
            return BonusResult.not_eligible(self.bonus_type)
        dedup_key, reason = decision
        if history.has_award(dedup_key):
            return BonusResult.not_eligible(self.bonus_type, "Already awarded")
        money, stars = settings.amounts()
        return BonusResult(
            bonus_type=self.bonus_type,
            should_award=True,
            money_pence=money,
            stars=stars,
            reason=reason,
            dedup_key=dedup_key,
        )

    @abstractmethod
    def evaluate(
        self,
        config: FamilyBonusConfig,
        child: Child,
        history: CompletionHistory,
        now: datetime,
        *,
        completion_id: str | None = None,
    ) -> Decision:
        raise NotImplementedError


class AchievementChecker(BonusChecker):
    """Fires every ``achievement_chores_required`` approved completions."""

    bonus_type = BonusType.ACHIEVEMENT

    def evaluate(self, config, child, history, now, *, completion_id=None) -> Decision:
        total = history.total_approved
        if total <= 0 or total % config.achievement_chores_required != 0:
            return None
        return achievement_key(child.id, total), f"Completed {total} chores!"


class BirthdayChecker(BonusChecker):
    """Fires once during the child's birth month."""

    bonus_type = BonusType.BIRTHDAY

    def evaluate(self, config, child, history, now, *, completion_id=None) -> Decision:
        if not is_birthday_month(child, now):
            return None
        return birthday_key(child.id, now), "Happy Birthday! 🎂"


class PerfectWeekChecker(BonusChecker):
    """Fires when every daily assignment of a week was completed.

    Judged only on Sunday (the current week) or Monday (the week just ended);
    mid-week the outcome is not yet known.
    """

    bonus_type = BonusType.PERFECT_WEEK

    def evaluate(self, config, child, history, now, *, completion_id=None) -> Decision:
        window = perfect_week_window(now)
        if window is None:
            return None
        start, end = window
        daily = [
            assignment
            for assignment in history.assignments
            if assignment.frequency == "daily" and assignment.active and start <= assignment.created_at <= end
        ]
        if not daily:
            return None
        for assignment in daily:
            if not any(start <= moment <= end for moment in assignment.completed_at):
                return None
        return (
            perfect_week_key(child.id, start),
            "Perfect week! All chores completed! ⭐",
        )


class MonthlyChecker(BonusChecker):
    """Fires when this month's completions hit a milestone exactly."""

    bonus_type = BonusType.MONTHLY

    def __init__(self, milestones: Sequence[int] = MONTHLY_MILESTONES) -> None:
        self.milestones = tuple(milestones)

    def evaluate(self, config, child, history, now, *, completion_id=None) -> Decision:
        count = history.monthly_approved
        if count not in self.milestones:
            return None
        return (
            monthly_key(child.id, now, count),
            f"{count} chores completed this month! 📅",
        )


class SurpriseChecker(BonusChecker):
    """Independent lottery per completion with ``surprise_chance`` percent odds."""

    bonus_type = BonusType.SURPRISE

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def evaluate(self, config, child, history, now, *, completion_id=None) -> Decision:
        roll = self._rng.randint(1, 100)
        if roll > config.surprise_chance:
            return None
        event = completion_id or uuid4().hex
        return surprise_key(child.id, event), "Surprise bonus! 🎲"


def default_checkers(rng: random.Random | None = None) -> List[BonusChecker]:
    return [
        AchievementChecker(),
        BirthdayChecker(),
        PerfectWeekChecker(),
        MonthlyChecker(),
        SurpriseChecker(rng),
    ]


class BonusEngine:
    """Run every bonus checker for a completion event."""

    def __init__(
        self,
        checkers: Sequence[BonusChecker] | None = None,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        parallel: bool = True,
    ) -> None:
        self.checkers: Tuple[BonusChecker, ...] = tuple(checkers or default_checkers(rng))
        self._clock = clock or SystemClock()
        self._parallel = parallel

    def evaluate(
        self,
        config: FamilyBonusConfig | None,
        child: Child,
        history: CompletionHistory,
        *,
        completion_id: str | None = None,
        only: Collection[BonusType] | None = None,
    ) -> List[BonusResult]:
        """Return one result per checker, in checker order.

        ``only`` restricts the run to the given bonus types.
        """

        now = self._clock.now()
        checkers = [checker for checker in self.checkers if only is None or checker.bonus_type in only]

        def run(checker: BonusChecker) -> BonusResult:
            return checker.check(config, child, history, now, completion_id=completion_id)

        if not self._parallel or len(checkers) < 2:
            return [run(checker) for checker in checkers]
        with ThreadPoolExecutor(max_workers=len(checkers)) as pool:
            return list(pool.map(run, checkers))

    def evaluate_all(
        self,
        config: FamilyBonusConfig | None,
        child: Child,
        history: CompletionHistory,
        *,
        completion_id: str | None = None,
        only: Collection[BonusType] | None = None,
    ) -> List[BonusResult]:
        """Return only the results that should be awarded."""

        results = self.evaluate(config, child, history, completion_id=completion_id, only=only)
        return [result for result in results if result.should_award]


__all__ = [
    "AchievementChecker",
    "BirthdayChecker",
    "BonusChecker",
    "BonusEngine",
    "MonthlyChecker",
    "PerfectWeekChecker",
    "SurpriseChecker",
    "achievement_key",
    "birthday_key",
    "candidate_keys",
    "default_checkers",
    "monthly_key",
    "perfect_week_key",
    "surprise_key",
]
