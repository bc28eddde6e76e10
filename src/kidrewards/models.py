"""Domain models used by the kidrewards package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from .money import DEFAULT_PENCE_PER_STAR, require_non_negative


def _tag_set(values: Iterable[str] | None) -> FrozenSet[str]:
    if not values:
        return frozenset()
    if isinstance(values, str):
        values = (values,)
    return frozenset(str(value).strip() for value in values if value is not None and str(value).strip())


class AgeGroup(str, Enum):
    """Age brackets shared by children and catalog items."""

    TODDLER_2_4 = "toddler_2_4"
    KID_5_8 = "kid_5_8"
    TWEEN_9_11 = "tween_9_11"
    TEEN_12_15 = "teen_12_15"
    YOUNG_ADULT_16_18 = "young_adult_16_18"
    ALL_AGES = "all_ages"

    @classmethod
    def parse(cls, value: "AgeGroup | str | None") -> Optional["AgeGroup"]:
        """Return the matching member, or ``None`` for empty or unknown tags."""

        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class BonusType(str, Enum):
    """Enumerates the bonus types a completion can trigger."""

    ACHIEVEMENT = "achievement"
    BIRTHDAY = "birthday"
    PERFECT_WEEK = "perfect_week"
    MONTHLY = "monthly"
    SURPRISE = "surprise"


class RewardMode(str, Enum):
    """Which currencies a bonus pays out in."""

    MONEY = "money"
    STARS = "stars"
    BOTH = "both"

    @classmethod
    def parse(cls, value: "RewardMode | str | None", *, default: Optional["RewardMode"] = None) -> "RewardMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is not None:
                return default
            raise


class AwardOutcome(str, Enum):
    """Result of pushing a bonus through the idempotency guard."""

    AWARDED = "awarded"
    ALREADY_AWARDED = "already_awarded"
    NOT_ELIGIBLE = "not_eligible"


@dataclass(frozen=True, slots=True)
class Child:
    """Read-only view of a child used for ranking and bonus decisions."""

    id: str
    age_group: Optional[AgeGroup] = None
    interests: FrozenSet[str] = frozenset()
    birth_month: Optional[int] = None
    birth_year: Optional[int] = None
    nickname: str = ""
    family_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "age_group", AgeGroup.parse(self.age_group))
        object.__setattr__(self, "interests", _tag_set(self.interests))
        if self.birth_month is not None and not 1 <= self.birth_month <= 12:
            raise ValueError("birth_month must be between 1 and 12.")


@dataclass(frozen=True, slots=True)
class RewardItem:
    """A catalog item that can be recommended to a child."""

    id: str
    age_tag: Optional[AgeGroup] = None
    interest_tags: FrozenSet[str] = frozenset()
    price_pence: Optional[int] = None
    popularity_score: float = 0.0
    featured: bool = False
    blocked: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    last_synced_at: Optional[datetime] = None
    category: Optional[str] = None
    title: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "age_tag", AgeGroup.parse(self.age_tag))
        object.__setattr__(self, "interest_tags", _tag_set(self.interest_tags))


@dataclass(frozen=True, slots=True)
class ParentPreferences:
    """Parent imposed constraints on what the shop may show."""

    max_reward_pence: Optional[int] = None
    allowed_categories: FrozenSet[str] = frozenset()
    blocked_categories: FrozenSet[str] = frozenset()
    blocked_reward_ids: FrozenSet[str] = frozenset()
    pinned_reward_ids: Tuple[str, ...] = ()
    curated_only: bool = False
    birthday_bonus_enabled: bool = True
    pence_per_star: int = DEFAULT_PENCE_PER_STAR

    def __post_init__(self) -> None:
        object.__setattr__(self, "allowed_categories", _tag_set(self.allowed_categories))
        object.__setattr__(self, "blocked_categories", _tag_set(self.blocked_categories))
        object.__setattr__(self, "blocked_reward_ids", _tag_set(self.blocked_reward_ids))
        object.__setattr__(self, "pinned_reward_ids", tuple(self.pinned_reward_ids or ()))
        if self.pence_per_star <= 0:
            raise ValueError("pence_per_star must be greater than zero.")


@dataclass(frozen=True, slots=True)
class RankingWeights:
    """Relative weights of the five scoring factors."""

    age_match: float = 0.30
    interest_overlap: float = 0.25
    budget_fit: float = 0.20
    popularity: float = 0.15
    freshness: float = 0.10
    block_penalty: float = -1.0

    def __post_init__(self) -> None:
        for name in ("age_match", "interest_overlap", "budget_fit", "popularity", "freshness"):
            if getattr(self, name) < 0:
                raise ValueError(f"Ranking weight '{name}' cannot be negative.")

    @classmethod
    def from_values(cls, values: Iterable[float]) -> "RankingWeights":
        age, interest, budget, popularity, freshness = values
        return cls(age, interest, budget, popularity, freshness)


@dataclass(frozen=True, slots=True)
class BonusSettings:
    """Per bonus type switch and payout amounts."""

    enabled: bool = False
    money_pence: int = 0
    stars: int = 0
    mode: RewardMode = RewardMode.MONEY

    def __post_init__(self) -> None:
        object.__setattr__(self, "money_pence", require_non_negative(self.money_pence, label="money_pence"))
        object.__setattr__(self, "stars", require_non_negative(self.stars, label="stars"))
        object.__setattr__(self, "mode", RewardMode.parse(self.mode))

    def amounts(self) -> Tuple[int, int]:
        """Return ``(money_pence, stars)`` selected by the reward mode."""

        money = self.money_pence if self.mode in (RewardMode.MONEY, RewardMode.BOTH) else 0
        stars = self.stars if self.mode in (RewardMode.STARS, RewardMode.BOTH) else 0
        return money, stars


@dataclass(frozen=True, slots=True)
class FamilyBonusConfig:
    """Bonus configuration for one family."""

    family_id: Optional[str] = None
    achievement: BonusSettings = BonusSettings()
    birthday: BonusSettings = BonusSettings()
    perfect_week: BonusSettings = BonusSettings()
    monthly: BonusSettings = BonusSettings()
    surprise: BonusSettings = BonusSettings()
    achievement_chores_required: int = 10
    surprise_chance: int = 5

    def __post_init__(self) -> None:
        if self.achievement_chores_required < 1:
            raise ValueError("achievement_chores_required must be at least 1.")
        if not 0 <= self.surprise_chance <= 100:
            raise ValueError("surprise_chance must be a percentage between 0 and 100.")

    @classmethod
    def disabled(cls, family_id: Optional[str] = None) -> "FamilyBonusConfig":
        """Configuration used when a family has none on file: nothing fires."""

        return cls(family_id=family_id)

    def settings_for(self, bonus_type: BonusType) -> BonusSettings:
        mapping: Dict[BonusType, BonusSettings] = {
            BonusType.ACHIEVEMENT: self.achievement,
            BonusType.BIRTHDAY: self.birthday,
            BonusType.PERFECT_WEEK: self.perfect_week,
            BonusType.MONTHLY: self.monthly,
            BonusType.SURPRISE: self.surprise,
        }
        return mapping[BonusType(bonus_type)]


@dataclass(frozen=True, slots=True)
class BonusResult:
    """Decision produced by a bonus checker for one completion event."""

    bonus_type: BonusType
    should_award: bool
    money_pence: int = 0
    stars: int = 0
    reason: str = ""
    dedup_key: Optional[str] = None

    @classmethod
    def not_eligible(cls, bonus_type: BonusType, reason: str = "") -> "BonusResult":
        return cls(bonus_type=bonus_type, should_award=False, reason=reason)


@dataclass(frozen=True, slots=True)
class AssignmentSummary:
    """A chore assignment with the approved completion timestamps on file."""

    assignment_id: str
    frequency: str
    active: bool
    created_at: datetime
    completed_at: Tuple[datetime, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "completed_at", tuple(self.completed_at))


@dataclass(frozen=True, slots=True)
class CompletionHistory:
    """Materialized completion and award history for one child."""

    total_approved: int = 0
    monthly_approved: int = 0
    assignments: Tuple[AssignmentSummary, ...] = ()
    awarded_keys: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "assignments", tuple(self.assignments))
        object.__setattr__(self, "awarded_keys", frozenset(self.awarded_keys))

    def has_award(self, dedup_key: str) -> bool:
        return dedup_key in self.awarded_keys


@dataclass(frozen=True, slots=True)
class AwardRequest:
    """A bonus award waiting to be recorded against a wallet."""

    wallet_id: str
    dedup_key: str
    money_pence: int
    stars: int
    bonus_type: BonusType
    reason: str = ""

    def __post_init__(self) -> None:
        if not self.dedup_key:
            raise ValueError("An award request needs a dedup key.")
        require_non_negative(self.money_pence, label="money_pence")
        require_non_negative(self.stars, label="stars")


@dataclass(frozen=True, slots=True)
class AwardReceipt:
    """What happened to a bonus at the idempotency guard."""

    outcome: AwardOutcome
    bonus_type: BonusType
    dedup_key: Optional[str] = None
    wallet_id: Optional[str] = None
    money_pence: int = 0
    stars: int = 0
    reason: str = ""
    recorded_at: Optional[datetime] = None

    @property
    def awarded(self) -> bool:
        return self.outcome is AwardOutcome.AWARDED


__all__ = [
    "AgeGroup",
    "AssignmentSummary",
    "AwardOutcome",
    "AwardReceipt",
    "AwardRequest",
    "BonusResult",
    "BonusSettings",
    "BonusType",
    "Child",
    "CompletionHistory",
    "FamilyBonusConfig",
    "ParentPreferences",
    "RankingWeights",
    "RewardItem",
    "RewardMode",
]
