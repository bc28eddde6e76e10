"""Reward ranking for the shop, plus recommendation and wish list views."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from . import scoring
from .config import (
    BIRTHDAY_BUDGET_MULTIPLIER,
    CHRISTMAS_BUDGET_MULTIPLIER,
    EXPLORATION_POPULARITY_CEILING,
    RANKING_WEIGHTS_OVERRIDE,
    RECOMMENDED_DEFAULT_LIMIT,
    WISH_LIST_DEFAULT_LIMIT,
    WISH_LIST_MAX_LIMIT,
)
from .models import Child, ParentPreferences, RankingWeights, RewardItem
from .seasons import (
    Clock,
    SystemClock,
    days_until_birthday,
    days_until_christmas,
    is_birthday_month,
    is_birthday_season,
    is_christmas_season,
)

EXCLUDED = -math.inf

DEFAULT_WEIGHTS = (
    RankingWeights.from_values(RANKING_WEIGHTS_OVERRIDE)
    if RANKING_WEIGHTS_OVERRIDE
    else RankingWeights()
)


@dataclass(frozen=True, slots=True)
class SeasonalInfo:
    """Seasonal flags shown alongside the shop."""

    birthday_month: bool
    show_birthday_list: bool
    show_christmas_list: bool
    days_until_birthday: Optional[int]
    days_until_christmas: int


@dataclass(frozen=True, slots=True)
class Recommendation:
    """Ranked rewards for one child along with the context they were built in."""

    rewards: Tuple[RewardItem, ...]
    mode: str
    child_stars: int
    seasonal: Optional[SeasonalInfo] = None
    birthday_bonus: bool = False

    @property
    def count(self) -> int:
        return len(self.rewards)


@dataclass(frozen=True, slots=True)
class WishList:
    """Seasonal wish list; empty outside its season."""

    kind: str
    in_season: bool
    days_until: Optional[int]
    rewards: Tuple[RewardItem, ...] = field(default_factory=tuple)
    message: str = ""

    @property
    def count(self) -> int:
        return len(self.rewards)


class RewardRanker:
    """Score and order catalog items for a child.

    Ranking is pure apart from the injected clock (freshness) and random
    source (exploration), so identical inputs at the same instant always give
    the same order.
    """

    def __init__(
        self,
        *,
        weights: RankingWeights | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.weights = weights or DEFAULT_WEIGHTS
        self._clock = clock or SystemClock()
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Core scoring
    # ------------------------------------------------------------------
    def score(
        self,
        child: Child,
        reward: RewardItem,
        child_stars: int,
        preferences: ParentPreferences,
        weights: RankingWeights | None = None,
        *,
        now: datetime | None = None,
    ) -> float:
        if scoring.block_penalty(reward, preferences) > 0:
            return EXCLUDED
        if not scoring.passes_category_filter(reward, preferences):
            return EXCLUDED
        weights = weights or self.weights
        moment = now or self._clock.now()
        return (
            weights.age_match * scoring.age_match(child, reward)
            + weights.interest_overlap * scoring.interest_overlap(child, reward)
            + weights.budget_fit
            * scoring.budget_fit(
                reward,
                preferences.max_reward_pence,
                child_stars,
                pence_per_star=preferences.pence_per_star,
            )
            + weights.popularity * scoring.popularity(reward)
            + weights.freshness * scoring.freshness(reward, moment)
        )

    def rank(
        self,
        child: Child,
        rewards: Sequence[RewardItem],
        child_stars: int,
        preferences: ParentPreferences,
        weights: RankingWeights | None = None,
    ) -> List[RewardItem]:
        """Return unblocked rewards ordered best first; ties keep input order."""

        moment = self._clock.now()
        scored = [
            (reward, self.score(child, reward, child_stars, preferences, weights, now=moment))
            for reward in rewards
        ]
        eligible = [item for item in scored if item[1] != EXCLUDED]
        eligible.sort(key=lambda item: item[1], reverse=True)
        return [reward for reward, _ in eligible]

    def exploration(self, rewards: Sequence[RewardItem], count: int = 5) -> List[RewardItem]:
        """Random sample of rarely picked, unblocked rewards."""

        pool = [
            reward
            for reward in rewards
            if reward.popularity_score < EXPLORATION_POPULARITY_CEILING and not reward.blocked
        ]
        size = max(0, min(count, len(pool)))
        return self._rng.sample(pool, size)

    # ------------------------------------------------------------------
    # Shop views
    # ------------------------------------------------------------------
    def seasonal_info(self, child: Child) -> SeasonalInfo:
        now = self._clock.now()
        return SeasonalInfo(
            birthday_month=is_birthday_month(child, now),
            show_birthday_list=is_birthday_season(child, now),
            show_christmas_list=is_christmas_season(now),
            days_until_birthday=days_until_birthday(child, now),
            days_until_christmas=days_until_christmas(now),
        )

    def recommend(
        self,
        child: Child,
        rewards: Sequence[RewardItem],
        child_stars: int,
        preferences: ParentPreferences,
        *,
        limit: int = RECOMMENDED_DEFAULT_LIMIT,
    ) -> Recommendation:
        if preferences.curated_only:
            featured = [reward for reward in rewards if reward.featured and not reward.blocked]
            featured.sort(key=lambda reward: reward.popularity_score, reverse=True)
            return Recommendation(rewards=tuple(featured[:limit]), mode="curated", child_stars=child_stars)

        ranked = self.rank(child, rewards, child_stars, preferences)
        pinned_ids = set(preferences.pinned_reward_ids)
        pinned = [reward for reward in ranked if reward.id in pinned_ids]
        rest = [reward for reward in ranked if reward.id not in pinned_ids]
        seasonal = self.seasonal_info(child)
        return Recommendation(
            rewards=tuple((pinned + rest)[:limit]),
            mode="personalized",
            child_stars=child_stars,
            seasonal=seasonal,
            birthday_bonus=preferences.birthday_bonus_enabled and seasonal.birthday_month,
        )

    def birthday_list(
        self,
        child: Child,
        rewards: Sequence[RewardItem],
        child_stars: int,
        preferences: ParentPreferences,
        *,
        limit: int = WISH_LIST_DEFAULT_LIMIT,
    ) -> WishList:
        now = self._clock.now()
        days = days_until_birthday(child, now)
        if not is_birthday_season(child, now):
            return WishList(
                kind="birthday",
                in_season=False,
                days_until=days,
                message="Birthday list is not available yet",
            )
        ranked = self.rank(child, rewards, child_stars * BIRTHDAY_BUDGET_MULTIPLIER, preferences)
        label = child.nickname or child.id
        return WishList(
            kind="birthday",
            in_season=True,
            days_until=days,
            rewards=tuple(ranked[: min(limit, WISH_LIST_MAX_LIMIT)]),
            message=f"Birthday wish list for {label}",
        )

    def christmas_list(
        self,
        child: Child,
        rewards: Sequence[RewardItem],
        child_stars: int,
        preferences: ParentPreferences,
        *,
        limit: int = WISH_LIST_DEFAULT_LIMIT,
    ) -> WishList:
        now = self._clock.now()
        days = days_until_christmas(now)
        if not is_christmas_season(now):
            return WishList(
                kind="christmas",
                in_season=False,
                days_until=days,
                message="Christmas list is not available yet",
            )
        ranked = self.rank(child, rewards, child_stars * CHRISTMAS_BUDGET_MULTIPLIER, preferences)
        label = child.nickname or child.id
        return WishList(
            kind="christmas",
            in_season=True,
            days_until=days,
            rewards=tuple(ranked[: min(limit, WISH_LIST_MAX_LIMIT)]),
            message=f"Christmas wish list for {label}",
        )


__all__ = [
    "DEFAULT_WEIGHTS",
    "EXCLUDED",
    "Recommendation",
    "RewardRanker",
    "SeasonalInfo",
    "WishList",
]
