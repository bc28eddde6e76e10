"""Configuration constants for kidrewards, read from the environment."""
from __future__ import annotations

import os
from typing import Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}.") from exc


def _env_weights(name: str) -> Optional[Tuple[float, float, float, float, float]]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    parts = [part.strip() for part in raw.split(",") if part.strip()]
    if len(parts) != 5:
        raise ValueError(f"{name} must list five comma separated weights, got {raw!r}.")
    try:
        age, interest, budget, popularity, freshness = (float(part) for part in parts)
    except ValueError as exc:
        raise ValueError(f"{name} weights must be numbers, got {raw!r}.") from exc
    return age, interest, budget, popularity, freshness


DATABASE_URL = os.environ.get("KIDREWARDS_DATABASE_URL", "sqlite:///kidrewards.db")
PENCE_PER_STAR = _env_int("KIDREWARDS_PENCE_PER_STAR", 10)
EVENT_LOG_PATH = os.environ.get("KIDREWARDS_EVENT_LOG") or None
RANKING_WEIGHTS_OVERRIDE = _env_weights("KIDREWARDS_WEIGHTS")

MONTHLY_MILESTONES: Tuple[int, ...] = (10, 25, 50, 100)
DEFAULT_ACHIEVEMENT_CHORES_REQUIRED = 10
DEFAULT_SURPRISE_CHANCE = 5
AGE_ORDER: Tuple[str, ...] = ("kid_5_8", "tween_9_11", "teen_12_15")
FRESHNESS_DECAY_DAYS = 30.0
EXPLORATION_POPULARITY_CEILING = 0.3
BIRTHDAY_BUDGET_MULTIPLIER = 3
CHRISTMAS_BUDGET_MULTIPLIER = 5
RECOMMENDED_DEFAULT_LIMIT = 20
RECOMMENDED_MAX_LIMIT = 50
FEATURED_DEFAULT_LIMIT = 20
FEATURED_MAX_LIMIT = 50
WISH_LIST_DEFAULT_LIMIT = 30
WISH_LIST_MAX_LIMIT = 100
EXPLORE_DEFAULT_LIMIT = 10
EXPLORE_MAX_LIMIT = 20
CATALOG_FETCH_LIMIT = 200
SQLITE_BUSY_TIMEOUT_SECONDS = 30

__all__ = [
    "DATABASE_URL",
    "PENCE_PER_STAR",
    "EVENT_LOG_PATH",
    "RANKING_WEIGHTS_OVERRIDE",
    "MONTHLY_MILESTONES",
    "DEFAULT_ACHIEVEMENT_CHORES_REQUIRED",
    "DEFAULT_SURPRISE_CHANCE",
    "AGE_ORDER",
    "FRESHNESS_DECAY_DAYS",
    "EXPLORATION_POPULARITY_CEILING",
    "BIRTHDAY_BUDGET_MULTIPLIER",
    "CHRISTMAS_BUDGET_MULTIPLIER",
    "RECOMMENDED_DEFAULT_LIMIT",
    "RECOMMENDED_MAX_LIMIT",
    "FEATURED_DEFAULT_LIMIT",
    "FEATURED_MAX_LIMIT",
    "WISH_LIST_DEFAULT_LIMIT",
    "WISH_LIST_MAX_LIMIT",
    "EXPLORE_DEFAULT_LIMIT",
    "EXPLORE_MAX_LIMIT",
    "CATALOG_FETCH_LIMIT",
    "SQLITE_BUSY_TIMEOUT_SECONDS",
]
