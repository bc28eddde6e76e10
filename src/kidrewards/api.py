"""API helpers converting ranking and bonus results to JSON friendly dicts."""

from __future__ import annotations

import json
from typing import Dict, Iterable

from .models import AwardReceipt, BonusResult, RewardItem
from .money import format_pence
from .ranking import Recommendation, SeasonalInfo, WishList


class ApiExporter:
    """Convert kidrewards data structures to JSON friendly dictionaries."""

    def reward(self, reward: RewardItem) -> Dict[str, object]:
        return {
            "id": reward.id,
            "title": reward.title,
            "ageTag": reward.age_tag.value if reward.age_tag else None,
            "interestTags": sorted(reward.interest_tags),
            "category": reward.category,
            "pricePence": reward.price_pence,
            "popularityScore": reward.popularity_score,
            "featured": reward.featured,
            "createdAt": reward.created_at.isoformat(),
        }

    def rewards(self, rewards: Iterable[RewardItem]) -> list:
        return [self.reward(reward) for reward in rewards]

    def recommendation(self, recommendation: Recommendation) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "rewards": self.rewards(recommendation.rewards),
            "count": recommendation.count,
            "mode": recommendation.mode,
        }
        if recommendation.mode == "personalized":
            payload["birthdayBonus"] = recommendation.birthday_bonus
            payload["childStars"] = recommendation.child_stars
            payload["seasonalLists"] = self._seasonal(recommendation.seasonal)
        return payload

    def wish_list(self, wish_list: WishList) -> Dict[str, object]:
        days_key = "daysUntilBirthday" if wish_list.kind == "birthday" else "daysUntilChristmas"
        season_key = "inBirthdaySeason" if wish_list.kind == "birthday" else "inChristmasSeason"
        return {
            "rewards": self.rewards(wish_list.rewards),
            "count": wish_list.count,
            "message": wish_list.message,
            days_key: wish_list.days_until,
            season_key: wish_list.in_season,
        }

    def bonus(self, result: BonusResult) -> Dict[str, object]:
        return {
            "bonusType": result.bonus_type.value,
            "shouldAward": result.should_award,
            "bonusMoneyPence": result.money_pence,
            "bonusStars": result.stars,
            "reason": result.reason,
            "dedupKey": result.dedup_key,
        }

    def receipt(self, receipt: AwardReceipt) -> Dict[str, object]:
        return {
            "outcome": receipt.outcome.value,
            "bonusType": receipt.bonus_type.value,
            "dedupKey": receipt.dedup_key,
            "walletId": receipt.wallet_id,
            "bonusMoneyPence": receipt.money_pence,
            "bonusMoney": format_pence(receipt.money_pence),
            "bonusStars": receipt.stars,
            "reason": receipt.reason,
            "recordedAt": receipt.recorded_at.isoformat() if receipt.recorded_at else None,
        }

    def to_json(self, payload: Dict[str, object]) -> str:
        return json.dumps(payload, sort_keys=True)

    def _seasonal(self, seasonal: SeasonalInfo | None) -> Dict[str, object] | None:
        if seasonal is None:
            return None
        return {
            "showBirthdayList": seasonal.show_birthday_list,
            "showChristmasList": seasonal.show_christmas_list,
            "daysUntilBirthday": seasonal.days_until_birthday,
            "daysUntilChristmas": seasonal.days_until_christmas,
        }


__all__ = ["ApiExporter"]
