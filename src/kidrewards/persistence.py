"""SQLModel persistence for families, completions, wallets and the catalog.

This module is the only place that knows about JSON columns and string tags;
everything it hands to the ranking and bonus code is a typed value from
:mod:`kidrewards.models`.
"""
from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import DateTime, UniqueConstraint, event, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Field, Session, SQLModel, create_engine, desc, select

from .awards import AwardLedger
from .bonuses import candidate_keys
from .config import (
    CATALOG_FETCH_LIMIT,
    DATABASE_URL,
    DEFAULT_ACHIEVEMENT_CHORES_REQUIRED,
    DEFAULT_SURPRISE_CHANCE,
    EXPLORATION_POPULARITY_CEILING,
    FEATURED_DEFAULT_LIMIT,
    PENCE_PER_STAR,
    SQLITE_BUSY_TIMEOUT_SECONDS,
)
from .exceptions import ChildNotFoundError, StoreUnavailableError, WalletNotFoundError
from .models import (
    AgeGroup,
    AssignmentSummary,
    AwardOutcome,
    AwardRequest,
    BonusSettings,
    BonusType,
    Child,
    CompletionHistory,
    FamilyBonusConfig,
    ParentPreferences,
    RewardItem,
    RewardMode,
)
from .money import pence_to_stars
from .seasons import month_start, perfect_week_window

COMPLETION_STATUS_PENDING = "pending"
COMPLETION_STATUS_APPROVED = "approved"
COMPLETION_STATUS_REJECTED = "rejected"

FREQUENCY_DAILY = "daily"
FREQUENCY_WEEKLY = "weekly"


def _new_id() -> str:
    return uuid4().hex


# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------
# Timestamps are naive local time kept in plain DATETIME columns.

class FamilyRecord(SQLModel, table=True):
    __tablename__ = "family"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str = ""
    pence_per_star: int = PENCE_PER_STAR
    achievement_bonus_enabled: bool = False
    achievement_chores_required: int = DEFAULT_ACHIEVEMENT_CHORES_REQUIRED
    achievement_bonus_money_pence: int = 0
    achievement_bonus_stars: int = 0
    achievement_bonus_type: str = RewardMode.MONEY.value
    birthday_bonus_enabled: bool = False
    birthday_bonus_money_pence: int = 0
    birthday_bonus_stars: int = 0
    birthday_bonus_type: str = RewardMode.MONEY.value
    perfect_week_bonus_enabled: bool = False
    perfect_week_bonus_money_pence: int = 0
    perfect_week_bonus_stars: int = 0
    perfect_week_bonus_type: str = RewardMode.MONEY.value
    monthly_bonus_enabled: bool = False
    monthly_bonus_money_pence: int = 0
    monthly_bonus_stars: int = 0
    monthly_bonus_type: str = RewardMode.MONEY.value
    surprise_bonus_enabled: bool = False
    surprise_bonus_chance: int = DEFAULT_SURPRISE_CHANCE
    surprise_bonus_money_pence: int = 0
    surprise_bonus_stars: int = 0
    surprise_bonus_type: str = RewardMode.MONEY.value
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class ChildRecord(SQLModel, table=True):
    __tablename__ = "child"

    id: str = Field(default_factory=_new_id, primary_key=True)
    family_id: str = Field(index=True)
    nickname: str = ""
    age_group: Optional[str] = None
    interests_json: Optional[str] = None
    birth_month: Optional[int] = None
    birth_year: Optional[int] = None
    paused: bool = False
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class WalletRecord(SQLModel, table=True):
    __tablename__ = "wallet"
    __table_args__ = (UniqueConstraint("family_id", "child_id", name="uq_wallet_family_child"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    family_id: str
    child_id: str
    balance_pence: int = 0
    stars: int = 0
    updated_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class AssignmentRecord(SQLModel, table=True):
    __tablename__ = "assignment"

    id: str = Field(default_factory=_new_id, primary_key=True)
    family_id: str = Field(index=True)
    child_id: str = Field(index=True)
    chore_name: str = ""
    frequency: str = FREQUENCY_DAILY  # daily|weekly|once
    active: bool = True
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class CompletionRecord(SQLModel, table=True):
    __tablename__ = "completion"

    id: str = Field(default_factory=_new_id, primary_key=True)
    family_id: str = Field(index=True)
    child_id: str = Field(index=True)
    assignment_id: Optional[str] = None
    status: str = COMPLETION_STATUS_PENDING  # pending|approved|rejected
    timestamp: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class BonusAwardRecord(SQLModel, table=True):
    __tablename__ = "bonus_award"
    __table_args__ = (UniqueConstraint("wallet_id", "dedup_key", name="uq_bonus_award_wallet_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    wallet_id: str = Field(index=True)
    family_id: str
    child_id: str = Field(index=True)
    dedup_key: str
    bonus_type: str
    money_pence: int = 0
    stars: int = 0
    reason: str = ""
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)


class RewardItemRecord(SQLModel, table=True):
    __tablename__ = "reward_item"

    id: str = Field(default_factory=_new_id, primary_key=True)
    title: str = ""
    age_tag: Optional[str] = None
    interest_tags_json: Optional[str] = None
    category: Optional[str] = None
    price_pence: Optional[int] = None
    popularity_score: float = 0.0
    featured: bool = False
    blocked: bool = False
    created_at: datetime = Field(default_factory=datetime.now, sa_type=DateTime)
    last_synced_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class ParentRewardPreferencesRecord(SQLModel, table=True):
    __tablename__ = "parent_reward_preferences"

    family_id: str = Field(primary_key=True)
    max_reward_pence: Optional[int] = None
    allowed_categories_json: Optional[str] = None
    blocked_categories_json: Optional[str] = None
    blocked_reward_ids_json: Optional[str] = None
    pinned_reward_ids_json: Optional[str] = None
    curated_only_mode: bool = False
    birthday_bonus_enabled: bool = True


# ---------------------------------------------------------------------------
# Engine setup
# ---------------------------------------------------------------------------
def _use_immediate_transactions(engine: Engine) -> None:
    """Make SQLite take the write lock when a transaction begins."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str | None = None, *, echo: bool = False) -> Engine:
    url = url or DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _use_immediate_transactions(engine)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


# ---------------------------------------------------------------------------
# JSON column helpers
# ---------------------------------------------------------------------------
def _load_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value if item is not None]
    return []


def _dump_list(values: Optional[Sequence[str]]) -> Optional[str]:
    if values is None:
        return None
    return json.dumps(list(values))


def _settings(record: FamilyRecord, prefix: str) -> BonusSettings:
    return BonusSettings(
        enabled=bool(getattr(record, f"{prefix}_bonus_enabled")),
        money_pence=max(0, getattr(record, f"{prefix}_bonus_money_pence") or 0),
        stars=max(0, getattr(record, f"{prefix}_bonus_stars") or 0),
        mode=RewardMode.parse(getattr(record, f"{prefix}_bonus_type"), default=RewardMode.MONEY),
    )


def _to_child(record: ChildRecord) -> Child:
    birth_month = record.birth_month if record.birth_month and 1 <= record.birth_month <= 12 else None
    return Child(
        id=record.id,
        family_id=record.family_id,
        nickname=record.nickname,
        age_group=AgeGroup.parse(record.age_group),
        interests=frozenset(_load_list(record.interests_json)),
        birth_month=birth_month,
        birth_year=record.birth_year,
    )


def _to_reward(record: RewardItemRecord) -> RewardItem:
    return RewardItem(
        id=record.id,
        title=record.title,
        age_tag=AgeGroup.parse(record.age_tag),
        interest_tags=frozenset(_load_list(record.interest_tags_json)),
        category=record.category or None,
        price_pence=record.price_pence,
        popularity_score=record.popularity_score or 0.0,
        featured=record.featured,
        blocked=record.blocked,
        created_at=record.created_at,
        last_synced_at=record.last_synced_at,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------
class SQLRewardsStore(AwardLedger):
    """Read family/catalog data and record bonus awards in one database."""

    def __init__(self, engine: Engine | None = None) -> None:
        self.engine = engine or make_engine()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except OperationalError as exc:
            raise StoreUnavailableError(f"Rewards store unavailable: {exc}") from exc

    # -- families & children ------------------------------------------------
    def family_config(self, family_id: str) -> FamilyBonusConfig:
        """Bonus configuration for ``family_id``; all disabled when missing."""

        with self._session() as session:
            record = session.get(FamilyRecord, family_id)
        if record is None:
            return FamilyBonusConfig.disabled(family_id)
        return FamilyBonusConfig(
            family_id=record.id,
            achievement=_settings(record, "achievement"),
            birthday=_settings(record, "birthday"),
            perfect_week=_settings(record, "perfect_week"),
            monthly=_settings(record, "monthly"),
            surprise=_settings(record, "surprise"),
            achievement_chores_required=max(1, record.achievement_chores_required or 1),
            surprise_chance=min(100, max(0, record.surprise_bonus_chance or 0)),
        )

    def pence_per_star(self, family_id: str) -> int:
        with self._session() as session:
            record = session.get(FamilyRecord, family_id)
        if record is None or not record.pence_per_star or record.pence_per_star <= 0:
            return PENCE_PER_STAR
        return record.pence_per_star

    def preferences(self, family_id: str) -> ParentPreferences:
        pence_per_star = self.pence_per_star(family_id)
        with self._session() as session:
            record = session.get(ParentRewardPreferencesRecord, family_id)
        if record is None:
            return ParentPreferences(pence_per_star=pence_per_star)
        return ParentPreferences(
            max_reward_pence=record.max_reward_pence,
            allowed_categories=frozenset(_load_list(record.allowed_categories_json)),
            blocked_categories=frozenset(_load_list(record.blocked_categories_json)),
            blocked_reward_ids=frozenset(_load_list(record.blocked_reward_ids_json)),
            pinned_reward_ids=tuple(_load_list(record.pinned_reward_ids_json)),
            curated_only=record.curated_only_mode,
            birthday_bonus_enabled=record.birthday_bonus_enabled,
            pence_per_star=pence_per_star,
        )

    def child(self, family_id: str, child_id: str) -> Child:
        with self._session() as session:
            record = session.exec(
                select(ChildRecord).where(ChildRecord.id == child_id, ChildRecord.family_id == family_id)
            ).first()
        if record is None:
            raise ChildNotFoundError(f"Child '{child_id}' does not exist in family '{family_id}'.")
        return _to_child(record)

    def children(self, family_id: str) -> List[Child]:
        """Children of the family that are not paused, ordered by id."""

        with self._session() as session:
            records = session.exec(
                select(ChildRecord)
                .where(ChildRecord.family_id == family_id, ChildRecord.paused == False)  # noqa: E712
                .order_by(ChildRecord.id)
            ).all()
        return [_to_child(record) for record in records]

    # -- wallets -------------------------------------------------------------
    def wallet_id(self, family_id: str, child_id: str, *, create: bool = True) -> str:
        query = select(WalletRecord).where(WalletRecord.family_id == family_id, WalletRecord.child_id == child_id)
        with self._session() as session:
            wallet = session.exec(query).first()
            if wallet is not None:
                return wallet.id
            if not create:
                raise WalletNotFoundError(f"No wallet for child '{child_id}' in family '{family_id}'.")
            wallet = WalletRecord(family_id=family_id, child_id=child_id)
            session.add(wallet)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                wallet = session.exec(query).one()
            return wallet.id

    def wallet(self, wallet_id: str) -> WalletRecord:
        with self._session() as session:
            wallet = session.get(WalletRecord, wallet_id)
        if wallet is None:
            raise WalletNotFoundError(f"Wallet '{wallet_id}' does not exist.")
        return wallet

    def child_stars(self, family_id: str, child_id: str) -> int:
        """Spending power in stars, derived from the wallet's pence balance."""

        with self._session() as session:
            wallet = session.exec(
                select(WalletRecord).where(WalletRecord.family_id == family_id, WalletRecord.child_id == child_id)
            ).first()
        if wallet is None:
            return 0
        return pence_to_stars(wallet.balance_pence, self.pence_per_star(family_id))

    # -- completion history --------------------------------------------------
    def history(
        self,
        family_id: str,
        child_id: str,
        now: datetime,
        *,
        completion_id: Optional[str] = None,
    ) -> CompletionHistory:
        """Completion counts plus whichever bonuses this evaluation could repeat."""

        approved = (
            CompletionRecord.family_id == family_id,
            CompletionRecord.child_id == child_id,
            CompletionRecord.status == COMPLETION_STATUS_APPROVED,
            CompletionRecord.timestamp <= now,
        )
        with self._session() as session:
            total = int(session.exec(select(func.count()).select_from(CompletionRecord).where(*approved)).one())
            monthly = int(
                session.exec(
                    select(func.count())
                    .select_from(CompletionRecord)
                    .where(*approved, CompletionRecord.timestamp >= month_start(now))
                ).one()
            )
            assignments = self._week_assignments(session, family_id, child_id, now)
            candidates = candidate_keys(
                child_id,
                total_approved=total,
                monthly_approved=monthly,
                now=now,
                completion_id=completion_id,
            )
            keys = session.exec(
                select(BonusAwardRecord.dedup_key).where(
                    BonusAwardRecord.family_id == family_id,
                    BonusAwardRecord.child_id == child_id,
                    BonusAwardRecord.dedup_key.in_(candidates),
                )
            ).all()
        return CompletionHistory(
            total_approved=total,
            monthly_approved=monthly,
            assignments=assignments,
            awarded_keys=frozenset(keys),
        )

    def _week_assignments(
        self, session: Session, family_id: str, child_id: str, now: datetime
    ) -> tuple[AssignmentSummary, ...]:
        window = perfect_week_window(now)
        if window is None:
            return ()
        start, end = window
        records = session.exec(
            select(AssignmentRecord).where(
                AssignmentRecord.family_id == family_id,
                AssignmentRecord.child_id == child_id,
                AssignmentRecord.frequency == FREQUENCY_DAILY,
                AssignmentRecord.active == True,  # noqa: E712
                AssignmentRecord.created_at >= start,
                AssignmentRecord.created_at <= end,
            )
        ).all()
        summaries = []
        for record in records:
            stamps = session.exec(
                select(CompletionRecord.timestamp).where(
                    CompletionRecord.assignment_id == record.id,
                    CompletionRecord.status == COMPLETION_STATUS_APPROVED,
                    CompletionRecord.timestamp >= start,
                    CompletionRecord.timestamp <= end,
                )
            ).all()
            summaries.append(
                AssignmentSummary(
                    assignment_id=record.id,
                    frequency=record.frequency,
                    active=record.active,
                    created_at=record.created_at,
                    completed_at=tuple(stamps),
                )
            )
        return tuple(summaries)

    # -- catalog ---------------------------------------------------------------
    def catalog_for(self, child: Child, *, limit: int = CATALOG_FETCH_LIMIT) -> List[RewardItem]:
        """Unblocked rewards tagged for the child's age group or all ages."""

        tags = {AgeGroup.ALL_AGES.value, (child.age_group or AgeGroup.ALL_AGES).value}
        with self._session() as session:
            records = session.exec(
                select(RewardItemRecord)
                .where(RewardItemRecord.blocked == False, RewardItemRecord.age_tag.in_(tags))  # noqa: E712
                .order_by(desc(RewardItemRecord.popularity_score), RewardItemRecord.id)
                .limit(limit)
            ).all()
        return [_to_reward(record) for record in records]

    def exploration_pool(self, age_group: AgeGroup | str | None = None, *, limit: int = 100) -> List[RewardItem]:
        query = select(RewardItemRecord).where(
            RewardItemRecord.blocked == False,  # noqa: E712
            RewardItemRecord.popularity_score < EXPLORATION_POPULARITY_CEILING,
        )
        tag = AgeGroup.parse(age_group)
        if tag is not None:
            query = query.where(RewardItemRecord.age_tag == tag.value)
        with self._session() as session:
            records = session.exec(query.order_by(RewardItemRecord.id).limit(limit)).all()
        return [_to_reward(record) for record in records]

    def featured(self, age_group: AgeGroup | str | None = None, *, limit: int = FEATURED_DEFAULT_LIMIT) -> List[RewardItem]:
        """Featured, unblocked rewards by popularity; ``age_group`` matches the tag exactly."""

        query = select(RewardItemRecord).where(
            RewardItemRecord.featured == True,  # noqa: E712
            RewardItemRecord.blocked == False,  # noqa: E712
        )
        tag = AgeGroup.parse(age_group)
        if tag is not None:
            query = query.where(RewardItemRecord.age_tag == tag.value)
        with self._session() as session:
            records = session.exec(
                query.order_by(desc(RewardItemRecord.popularity_score), RewardItemRecord.id).limit(limit)
            ).all()
        return [_to_reward(record) for record in records]

    # -- awards ----------------------------------------------------------------
    def record_if_absent(self, request: AwardRequest, *, at: datetime) -> AwardOutcome:
        """Insert the award and credit the wallet in one transaction.

        The unique constraint on ``(wallet_id, dedup_key)`` decides races: the
        losing transaction hits ``IntegrityError`` and reports the award as
        already made.
        """

        with self._session() as session:
            wallet = session.get(WalletRecord, request.wallet_id)
            if wallet is None:
                raise WalletNotFoundError(f"Wallet '{request.wallet_id}' does not exist.")
            session.add(
                BonusAwardRecord(
                    wallet_id=wallet.id,
                    family_id=wallet.family_id,
                    child_id=wallet.child_id,
                    dedup_key=request.dedup_key,
                    bonus_type=BonusType(request.bonus_type).value,
                    money_pence=request.money_pence,
                    stars=request.stars,
                    reason=request.reason,
                    created_at=at,
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                return AwardOutcome.ALREADY_AWARDED
            session.exec(
                update(WalletRecord)
                .where(WalletRecord.id == wallet.id)
                .values(
                    balance_pence=WalletRecord.balance_pence + request.money_pence,
                    stars=WalletRecord.stars + request.stars,
                    updated_at=at,
                )
            )
            session.commit()
        return AwardOutcome.AWARDED

    def awards(self, wallet_id: str) -> List[BonusAwardRecord]:
        with self._session() as session:
            return list(
                session.exec(
                    select(BonusAwardRecord)
                    .where(BonusAwardRecord.wallet_id == wallet_id)
                    .order_by(BonusAwardRecord.id)
                ).all()
            )

    # -- writes used to set up families ------------------------------------------
    def add(self, *records: Any) -> None:
        with self._session() as session:
            for record in records:
                session.add(record)
            session.commit()

    def save_preferences(
        self,
        family_id: str,
        *,
        max_reward_pence: Optional[int] = None,
        allowed_categories: Optional[Sequence[str]] = None,
        blocked_categories: Optional[Sequence[str]] = None,
        blocked_reward_ids: Optional[Sequence[str]] = None,
        pinned_reward_ids: Optional[Sequence[str]] = None,
        curated_only: bool = False,
        birthday_bonus_enabled: bool = True,
    ) -> ParentRewardPreferencesRecord:
        record = ParentRewardPreferencesRecord(
            family_id=family_id,
            max_reward_pence=max_reward_pence,
            allowed_categories_json=_dump_list(allowed_categories),
            blocked_categories_json=_dump_list(blocked_categories),
            blocked_reward_ids_json=_dump_list(blocked_reward_ids),
            pinned_reward_ids_json=_dump_list(pinned_reward_ids),
            curated_only_mode=curated_only,
            birthday_bonus_enabled=birthday_bonus_enabled,
        )
        with self._session() as session:
            session.merge(record)
            session.commit()
        return record

    def approve_completion(
        self,
        family_id: str,
        child_id: str,
        *,
        at: datetime,
        assignment_id: Optional[str] = None,
    ) -> CompletionRecord:
        completion = CompletionRecord(
            family_id=family_id,
            child_id=child_id,
            assignment_id=assignment_id,
            status=COMPLETION_STATUS_APPROVED,
            timestamp=at,
        )
        self.add(completion)
        return completion


__all__ = [
    "AssignmentRecord",
    "BonusAwardRecord",
    "ChildRecord",
    "CompletionRecord",
    "FamilyRecord",
    "ParentRewardPreferencesRecord",
    "RewardItemRecord",
    "SQLRewardsStore",
    "WalletRecord",
    "COMPLETION_STATUS_APPROVED",
    "COMPLETION_STATUS_PENDING",
    "COMPLETION_STATUS_REJECTED",
    "FREQUENCY_DAILY",
    "FREQUENCY_WEEKLY",
    "create_db_and_tables",
    "make_engine",
]
