"""High level service tying the store, ranking and bonus engines together."""

from __future__ import annotations

import random
from typing import Collection, Dict, FrozenSet, List, Optional

from .admin import AuditLog
from .awards import IdempotencyGuard
from .bonuses import BonusEngine
from .config import (
    EXPLORE_DEFAULT_LIMIT,
    EXPLORE_MAX_LIMIT,
    FEATURED_DEFAULT_LIMIT,
    FEATURED_MAX_LIMIT,
    RECOMMENDED_DEFAULT_LIMIT,
    RECOMMENDED_MAX_LIMIT,
    WISH_LIST_DEFAULT_LIMIT,
)
from .models import AgeGroup, AwardReceipt, BonusResult, BonusType, FamilyBonusConfig, RewardItem
from .ops import StructuredLogger
from .persistence import SQLRewardsStore
from .ranking import Recommendation, RewardRanker, WishList
from .seasons import Clock, SystemClock

SCHEDULED_BONUS_TYPES = frozenset({BonusType.BIRTHDAY, BonusType.PERFECT_WEEK, BonusType.MONTHLY})


class KidRewards:
    """Evaluate bonuses on completions and build the reward shop for a child."""

    __slots__ = (
        "_store",
        "_clock",
        "_engine",
        "_ranker",
        "_guard",
        "_logger",
        "_audit",
    )

    def __init__(
        self,
        store: SQLRewardsStore,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        engine: BonusEngine | None = None,
        ranker: RewardRanker | None = None,
        logger: StructuredLogger | None = None,
        audit: AuditLog | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        rng = rng or random.Random()
        self._engine = engine or BonusEngine(clock=self._clock, rng=rng)
        self._ranker = ranker or RewardRanker(clock=self._clock, rng=rng)
        self._logger = logger or StructuredLogger.from_config()
        self._audit = audit or AuditLog()
        self._guard = IdempotencyGuard(store, clock=self._clock, logger=self._logger, audit=self._audit)

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ------------------------------------------------------------------
    # Bonuses
    # ------------------------------------------------------------------
    def _bonus_types(self, family_id: str, candidates: Collection[BonusType]) -> FrozenSet[BonusType]:
        """Drop the birthday bonus for families that switched it off."""

        types = frozenset(candidates)
        if BonusType.BIRTHDAY in types and not self._store.preferences(family_id).birthday_bonus_enabled:
            types -= {BonusType.BIRTHDAY}
        return types

    def _evaluate(
        self,
        family_id: str,
        child_id: str,
        config: FamilyBonusConfig,
        types: Collection[BonusType],
        completion_id: Optional[str],
    ) -> List[BonusResult]:
        child = self._store.child(family_id, child_id)
        history = self._store.history(family_id, child_id, self._clock.now(), completion_id=completion_id)
        results = self._engine.evaluate_all(config, child, history, completion_id=completion_id, only=types)
        self._logger.log(
            "bonus_evaluated",
            family=family_id,
            child=child_id,
            eligible=[result.bonus_type.value for result in results],
        )
        return results

    def evaluate_bonuses(
        self,
        family_id: str,
        child_id: str,
        *,
        completion_id: Optional[str] = None,
    ) -> List[BonusResult]:
        """Bonuses the child currently qualifies for; nothing is written."""

        config = self._store.family_config(family_id)
        types = self._bonus_types(family_id, BonusType)
        return self._evaluate(family_id, child_id, config, types, completion_id)

    def process_completion(
        self,
        family_id: str,
        child_id: str,
        *,
        completion_id: Optional[str] = None,
    ) -> List[AwardReceipt]:
        """Evaluate bonuses after an approved completion and credit the winners."""

        results = self.evaluate_bonuses(family_id, child_id, completion_id=completion_id)
        if not results:
            return []
        wallet_id = self._store.wallet_id(family_id, child_id)
        return [self._guard.award(wallet_id, result, child_id=child_id) for result in results]

    def sweep_family(self, family_id: str) -> Dict[str, List[AwardReceipt]]:
        """Run the date driven bonuses for every active child of a family.

        Birthday, perfect week and monthly bonuses do not need a completion to
        become due, so a scheduled job calls this once a day. Awards go through
        the same guard as completions, so a sweep that overlaps a completion
        (or another sweep) still credits each bonus once.
        """

        config = self._store.family_config(family_id)
        types = self._bonus_types(family_id, SCHEDULED_BONUS_TYPES)
        receipts: Dict[str, List[AwardReceipt]] = {}
        for child in self._store.children(family_id):
            results = self._evaluate(family_id, child.id, config, types, None)
            if not results:
                receipts[child.id] = []
                continue
            wallet_id = self._store.wallet_id(family_id, child.id)
            receipts[child.id] = [self._guard.award(wallet_id, result, child_id=child.id) for result in results]
        self._logger.log(
            "bonus_sweep",
            family=family_id,
            children=len(receipts),
            awarded=sum(1 for batch in receipts.values() for receipt in batch if receipt.awarded),
        )
        return receipts

    # ------------------------------------------------------------------
    # Reward shop
    # ------------------------------------------------------------------
    def recommended(self, family_id: str, child_id: str, *, limit: int = RECOMMENDED_DEFAULT_LIMIT) -> Recommendation:
        child = self._store.child(family_id, child_id)
        preferences = self._store.preferences(family_id)
        stars = self._store.child_stars(family_id, child_id)
        recommendation = self._ranker.recommend(
            child,
            self._store.catalog_for(child),
            stars,
            preferences,
            limit=min(limit, RECOMMENDED_MAX_LIMIT),
        )
        self._logger.log(
            "rewards_ranked",
            family=family_id,
            child=child_id,
            mode=recommendation.mode,
            count=recommendation.count,
        )
        return recommendation

    def birthday_list(self, family_id: str, child_id: str, *, limit: int = WISH_LIST_DEFAULT_LIMIT) -> WishList:
        child = self._store.child(family_id, child_id)
        return self._ranker.birthday_list(
            child,
            self._store.catalog_for(child),
            self._store.child_stars(family_id, child_id),
            self._store.preferences(family_id),
            limit=limit,
        )

    def christmas_list(self, family_id: str, child_id: str, *, limit: int = WISH_LIST_DEFAULT_LIMIT) -> WishList:
        child = self._store.child(family_id, child_id)
        return self._ranker.christmas_list(
            child,
            self._store.catalog_for(child),
            self._store.child_stars(family_id, child_id),
            self._store.preferences(family_id),
            limit=limit,
        )

    def explore(self, *, age_group: AgeGroup | str | None = None, limit: int = EXPLORE_DEFAULT_LIMIT):
        pool = self._store.exploration_pool(age_group)
        return self._ranker.exploration(pool, min(limit, EXPLORE_MAX_LIMIT))

    def featured(self, *, age_group: AgeGroup | str | None = None, limit: int = FEATURED_DEFAULT_LIMIT) -> List[RewardItem]:
        return self._store.featured(age_group, limit=min(limit, FEATURED_MAX_LIMIT))


__all__ = ["KidRewards", "SCHEDULED_BONUS_TYPES"]
