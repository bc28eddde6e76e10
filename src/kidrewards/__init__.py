"""kidrewards: reward ranking and bonus eligibility for family chore tracking."""

from .admin import AuditLog
from .api import ApiExporter
from .awards import AwardLedger, IdempotencyGuard, InMemoryAwardLedger
from .bonuses import (
    AchievementChecker,
    BirthdayChecker,
    BonusChecker,
    BonusEngine,
    MonthlyChecker,
    PerfectWeekChecker,
    SurpriseChecker,
)
from .exceptions import (
    ChildNotFoundError,
    KidRewardsError,
    StoreUnavailableError,
    WalletNotFoundError,
)
from .models import (
    AgeGroup,
    AssignmentSummary,
    AwardOutcome,
    AwardReceipt,
    AwardRequest,
    BonusResult,
    BonusSettings,
    BonusType,
    Child,
    CompletionHistory,
    FamilyBonusConfig,
    ParentPreferences,
    RankingWeights,
    RewardItem,
    RewardMode,
)
from .ops import StructuredLogger
from .persistence import SQLRewardsStore, create_db_and_tables, make_engine
from .ranking import DEFAULT_WEIGHTS, Recommendation, RewardRanker, SeasonalInfo, WishList
from .seasons import Clock, FixedClock, SystemClock
from .service import KidRewards

__all__ = [
    "AchievementChecker",
    "AgeGroup",
    "ApiExporter",
    "AssignmentSummary",
    "AuditLog",
    "AwardLedger",
    "AwardOutcome",
    "AwardReceipt",
    "AwardRequest",
    "BirthdayChecker",
    "BonusChecker",
    "BonusEngine",
    "BonusResult",
    "BonusSettings",
    "BonusType",
    "Child",
    "ChildNotFoundError",
    "Clock",
    "CompletionHistory",
    "DEFAULT_WEIGHTS",
    "FamilyBonusConfig",
    "FixedClock",
    "IdempotencyGuard",
    "InMemoryAwardLedger",
    "KidRewards",
    "KidRewardsError",
    "MonthlyChecker",
    "ParentPreferences",
    "PerfectWeekChecker",
    "RankingWeights",
    "Recommendation",
    "RewardItem",
    "RewardMode",
    "RewardRanker",
    "SQLRewardsStore",
    "SeasonalInfo",
    "StoreUnavailableError",
    "StructuredLogger",
    "SurpriseChecker",
    "SystemClock",
    "WalletNotFoundError",
    "WishList",
    "create_db_and_tables",
    "make_engine",
]
