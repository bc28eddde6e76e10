"""Scoring primitives used to rank rewards for a child.

Each primitive returns a value in ``[0, 1]`` and is defined for every
well-typed input: missing prices or tags produce a neutral score rather than an
error. Exclusion is handled by :func:`block_penalty` and
:func:`passes_category_filter`, not by scoring anything as zero.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from .config import AGE_ORDER, FRESHNESS_DECAY_DAYS
from .models import AgeGroup, Child, ParentPreferences, RewardItem
from .money import DEFAULT_PENCE_PER_STAR

NEUTRAL_SCORE = 0.5
UNMATCHED_AGE_SCORE = 0.1


def age_match(child: Child, reward: RewardItem) -> float:
    child_tag = child.age_group or AgeGroup.ALL_AGES
    reward_tag = reward.age_tag
    if reward_tag is AgeGroup.ALL_AGES or child_tag == reward_tag:
        return 1.0
    if reward_tag is None or child_tag.value not in AGE_ORDER or reward_tag.value not in AGE_ORDER:
        return UNMATCHED_AGE_SCORE
    distance = abs(AGE_ORDER.index(child_tag.value) - AGE_ORDER.index(reward_tag.value))
    if distance == 1:
        return 0.5
    if distance == 2:
        return 0.2
    return UNMATCHED_AGE_SCORE


def interest_overlap(child: Child, reward: RewardItem) -> float:
    """Jaccard similarity of the interest tags; 0.5 when either side is empty."""

    if not child.interests or not reward.interest_tags:
        return NEUTRAL_SCORE
    union = child.interests | reward.interest_tags
    return len(child.interests & reward.interest_tags) / len(union)


def budget_fit(
    reward: RewardItem,
    max_budget: Optional[int],
    child_stars: int,
    *,
    pence_per_star: int = DEFAULT_PENCE_PER_STAR,
) -> float:
    """Score how affordable ``reward`` is for a child holding ``child_stars``.

    A price above the parent cap scores 0. Otherwise the price is converted to
    stars and bucketed by its ratio to the child's balance.
    """

    price = reward.price_pence
    if not price:
        return NEUTRAL_SCORE
    if max_budget is not None and max_budget > 0 and price > max_budget:
        return 0.0
    required = price // pence_per_star
    stars = max(child_stars, 0)
    if required <= stars * 0.5:
        return 1.0
    if required <= stars:
        return 0.8
    if required <= stars * 1.5:
        return 0.5
    if required <= stars * 2:
        return 0.3
    return 0.1


def popularity(reward: RewardItem) -> float:
    return max(0.0, min(reward.popularity_score, 1.0))


def freshness(reward: RewardItem, now: datetime) -> float:
    """Exponential decay on catalog age: 1.0 when new, about 0.37 at 30 days."""

    age_days = (now - reward.created_at).total_seconds() / 86400
    return math.exp(-max(age_days, 0.0) / FRESHNESS_DECAY_DAYS)


def block_penalty(reward: RewardItem, preferences: ParentPreferences) -> float:
    if reward.blocked or reward.id in preferences.blocked_reward_ids:
        return 1.0
    return 0.0


def passes_category_filter(reward: RewardItem, preferences: ParentPreferences) -> bool:
    category = reward.category
    if not category:
        return True
    if preferences.allowed_categories and category not in preferences.allowed_categories:
        return False
    if category in preferences.blocked_categories:
        return False
    return True


__all__ = [
    "NEUTRAL_SCORE",
    "age_match",
    "interest_overlap",
    "budget_fit",
    "popularity",
    "freshness",
    "block_penalty",
    "passes_category_filter",
]
