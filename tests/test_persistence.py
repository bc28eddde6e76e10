from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

import pytest
from sqlalchemy import DateTime

from kidrewards.exceptions import ChildNotFoundError, StoreUnavailableError, WalletNotFoundError
from kidrewards.models import AgeGroup, AwardOutcome, AwardRequest, BonusType, RewardMode
from kidrewards.persistence import (
    AssignmentRecord,
    BonusAwardRecord,
    ChildRecord,
    CompletionRecord,
    FamilyRecord,
    ParentRewardPreferencesRecord,
    RewardItemRecord,
    SQLRewardsStore,
    WalletRecord,
    create_db_and_tables,
    make_engine,
)

WEDNESDAY = datetime(2026, 10, 21, 12, 0)
SUNDAY = datetime(2026, 10, 18, 19, 0)


@pytest.fixture
def store(tmp_path) -> SQLRewardsStore:
    engine = make_engine(f"sqlite:///{tmp_path / 'rewards.db'}")
    create_db_and_tables(engine)
    store = SQLRewardsStore(engine)
    store.add(
        FamilyRecord(
            id="fam",
            name="Hughes",
            pence_per_star=20,
            achievement_bonus_enabled=True,
            achievement_chores_required=5,
            achievement_bonus_money_pence=250,
            achievement_bonus_stars=25,
            achievement_bonus_type="both",
            monthly_bonus_enabled=True,
            monthly_bonus_stars=10,
            monthly_bonus_type="stars",
            surprise_bonus_enabled=True,
            surprise_bonus_chance=140,
            surprise_bonus_type="gold",
        ),
        ChildRecord(
            id="ava",
            family_id="fam",
            nickname="Ava",
            age_group="kid_5_8",
            interests_json='["lego", "art"]',
            birth_month=10,
        ),
    )
    return store


def request(wallet_id: str, dedup_key: str = "achievement:ava:5") -> AwardRequest:
    return AwardRequest(
        wallet_id=wallet_id,
        dedup_key=dedup_key,
        money_pence=250,
        stars=25,
        bonus_type=BonusType.ACHIEVEMENT,
        reason="Completed 5 chores!",
    )


def test_family_config_maps_columns(store: SQLRewardsStore) -> None:
    config = store.family_config("fam")

    assert config.achievement.enabled
    assert config.achievement.mode is RewardMode.BOTH
    assert config.achievement.amounts() == (250, 25)
    assert config.monthly.amounts() == (0, 10)
    assert config.achievement_chores_required == 5
    assert config.surprise_chance == 100
    assert config.surprise.mode is RewardMode.MONEY
    assert not config.birthday.enabled


def test_missing_family_config_disables_everything(store: SQLRewardsStore) -> None:
    config = store.family_config("nobody")

    assert config.family_id == "nobody"
    assert not any(
        config.settings_for(bonus_type).enabled for bonus_type in BonusType
    )


def test_preferences_round_trip_with_family_star_rate(store: SQLRewardsStore) -> None:
    store.save_preferences(
        "fam",
        max_reward_pence=1500,
        allowed_categories=["books"],
        blocked_reward_ids=["r9"],
        pinned_reward_ids=["r2", "r1"],
        birthday_bonus_enabled=False,
    )

    preferences = store.preferences("fam")

    assert preferences.max_reward_pence == 1500
    assert preferences.allowed_categories == frozenset({"books"})
    assert preferences.blocked_reward_ids == frozenset({"r9"})
    assert preferences.pinned_reward_ids == ("r2", "r1")
    assert preferences.birthday_bonus_enabled is False
    assert preferences.pence_per_star == 20


def test_malformed_json_columns_read_as_empty(store: SQLRewardsStore) -> None:
    store.add(ParentRewardPreferencesRecord(family_id="fam", blocked_categories_json="{not json", curated_only_mode=True))

    preferences = store.preferences("fam")

    assert preferences.blocked_categories == frozenset()
    assert preferences.curated_only is True


def test_default_preferences_without_record(store: SQLRewardsStore) -> None:
    preferences = store.preferences("other")

    assert preferences.max_reward_pence is None
    assert preferences.pence_per_star == 10


def test_child_lookup(store: SQLRewardsStore) -> None:
    child = store.child("fam", "ava")

    assert child.age_group is AgeGroup.KID_5_8
    assert child.interests == frozenset({"lego", "art"})
    assert child.birth_month == 10
    with pytest.raises(ChildNotFoundError):
        store.child("other-family", "ava")


def test_wallet_created_once(store: SQLRewardsStore) -> None:
    first = store.wallet_id("fam", "ava")

    assert store.wallet_id("fam", "ava") == first
    with pytest.raises(WalletNotFoundError):
        store.wallet_id("fam", "ben", create=False)
    with pytest.raises(WalletNotFoundError):
        store.wallet("missing")


def test_child_stars_use_family_rate(store: SQLRewardsStore) -> None:
    assert store.child_stars("fam", "ava") == 0

    store.add(WalletRecord(family_id="fam", child_id="ava", balance_pence=450))

    assert store.child_stars("fam", "ava") == 22


def test_history_counts_approved_completions(store: SQLRewardsStore) -> None:
    store.approve_completion("fam", "ava", at=datetime(2026, 9, 30, 18, 0))
    store.approve_completion("fam", "ava", at=datetime(2026, 10, 2, 18, 0))
    store.approve_completion("fam", "ava", at=datetime(2026, 10, 20, 18, 0))
    store.approve_completion("fam", "ava", at=datetime(2026, 10, 25, 18, 0))
    store.add(CompletionRecord(family_id="fam", child_id="ava", status="pending", timestamp=datetime(2026, 10, 3)))

    history = store.history("fam", "ava", WEDNESDAY)

    assert history.total_approved == 3
    assert history.monthly_approved == 2
    assert history.assignments == ()
    assert history.awarded_keys == frozenset()


def test_history_collects_week_assignments_on_sunday(store: SQLRewardsStore) -> None:
    store.add(
        AssignmentRecord(id="dishes", family_id="fam", child_id="ava", created_at=datetime(2026, 10, 13, 8, 0)),
        AssignmentRecord(id="old", family_id="fam", child_id="ava", created_at=datetime(2026, 10, 5, 8, 0)),
        AssignmentRecord(
            id="bins", family_id="fam", child_id="ava", frequency="weekly", created_at=datetime(2026, 10, 13, 8, 0)
        ),
    )
    store.approve_completion("fam", "ava", at=datetime(2026, 10, 14, 17, 0), assignment_id="dishes")

    history = store.history("fam", "ava", SUNDAY)

    assert [summary.assignment_id for summary in history.assignments] == ["dishes"]
    assert history.assignments[0].completed_at == (datetime(2026, 10, 14, 17, 0),)


def test_catalog_filters_age_and_blocked(store: SQLRewardsStore) -> None:
    now = WEDNESDAY - timedelta(days=3)
    store.add(
        RewardItemRecord(id="lego", age_tag="kid_5_8", popularity_score=0.4, interest_tags_json='["lego"]', created_at=now),
        RewardItemRecord(id="kite", age_tag="all_ages", popularity_score=0.9, created_at=now),
        RewardItemRecord(id="phone", age_tag="teen_12_15", popularity_score=1.0, created_at=now),
        RewardItemRecord(id="sweets", age_tag="kid_5_8", popularity_score=0.8, blocked=True, created_at=now),
        RewardItemRecord(id="puzzle", age_tag="kid_5_8", popularity_score=0.1, created_at=now),
    )

    catalog = store.catalog_for(store.child("fam", "ava"))
    pool = store.exploration_pool("kid_5_8")

    assert [reward.id for reward in catalog] == ["kite", "lego", "puzzle"]
    assert catalog[1].interest_tags == frozenset({"lego"})
    assert [reward.id for reward in pool] == ["puzzle"]
    assert [reward.id for reward in store.exploration_pool()] == ["puzzle"]


def test_record_if_absent_credits_once(store: SQLRewardsStore) -> None:
    wallet_id = store.wallet_id("fam", "ava")

    first = store.record_if_absent(request(wallet_id), at=WEDNESDAY)
    second = store.record_if_absent(request(wallet_id), at=WEDNESDAY)

    wallet = store.wallet(wallet_id)
    assert first is AwardOutcome.AWARDED
    assert second is AwardOutcome.ALREADY_AWARDED
    assert (wallet.balance_pence, wallet.stars) == (250, 25)
    assert [award.dedup_key for award in store.awards(wallet_id)] == ["achievement:ava:5"]


def test_record_if_absent_unknown_wallet(store: SQLRewardsStore) -> None:
    with pytest.raises(WalletNotFoundError):
        store.record_if_absent(request("missing"), at=WEDNESDAY)


def test_parallel_awards_credit_exactly_once(store: SQLRewardsStore) -> None:
    wallet_id = store.wallet_id("fam", "ava")

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(lambda _: store.record_if_absent(request(wallet_id), at=WEDNESDAY), range(100)))

    wallet = store.wallet(wallet_id)
    assert outcomes.count(AwardOutcome.AWARDED) == 1
    assert outcomes.count(AwardOutcome.ALREADY_AWARDED) == 99
    assert (wallet.balance_pence, wallet.stars) == (250, 25)
    assert len(store.awards(wallet_id)) == 1


def test_database_errors_surface_as_store_unavailable(tmp_path) -> None:
    store = SQLRewardsStore(make_engine(f"sqlite:///{tmp_path / 'empty.db'}"))

    with pytest.raises(StoreUnavailableError):
        store.family_config("fam")


def test_history_loads_only_keys_this_evaluation_could_repeat(store: SQLRewardsStore) -> None:
    for day in range(1, 6):
        store.approve_completion("fam", "ava", at=datetime(2026, 10, day, 18, 0))
    wallet_id = store.wallet_id("fam", "ava")
    for key in ("achievement:ava:5", "achievement:ava:100", "birthday:ava:2025-10", "surprise:ava:c1", "surprise:ava:c0"):
        store.record_if_absent(request(wallet_id, key), at=WEDNESDAY)

    history = store.history("fam", "ava", WEDNESDAY)
    with_completion = store.history("fam", "ava", WEDNESDAY, completion_id="c1")

    assert history.total_approved == 5
    assert history.awarded_keys == frozenset({"achievement:ava:5"})
    assert with_completion.awarded_keys == frozenset({"achievement:ava:5", "surprise:ava:c1"})


def test_timestamp_columns_store_naive_datetimes(store: SQLRewardsStore) -> None:
    tables = (
        FamilyRecord,
        ChildRecord,
        WalletRecord,
        AssignmentRecord,
        CompletionRecord,
        BonusAwardRecord,
        RewardItemRecord,
        ParentRewardPreferencesRecord,
    )
    columns = [
        column
        for record in tables
        for column in record.__table__.columns
        if column.name in {"created_at", "updated_at", "timestamp", "last_synced_at"}
    ]
    wallet_id = store.wallet_id("fam", "ava")
    store.record_if_absent(request(wallet_id), at=WEDNESDAY)

    assert columns
    assert all(type(column.type) is DateTime and not column.type.timezone for column in columns)
    stamp = store.awards(wallet_id)[0].created_at
    assert stamp == WEDNESDAY
    assert stamp.tzinfo is None


def test_children_skip_paused_accounts(store: SQLRewardsStore) -> None:
    store.add(
        ChildRecord(id="ben", family_id="fam", paused=True),
        ChildRecord(id="abe", family_id="fam"),
        ChildRecord(id="zoe", family_id="other"),
    )

    assert [child.id for child in store.children("fam")] == ["abe", "ava"]
    assert store.children("nobody") == []


def test_featured_orders_by_popularity_and_matches_age_exactly(store: SQLRewardsStore) -> None:
    now = WEDNESDAY - timedelta(days=3)
    store.add(
        RewardItemRecord(id="kite", age_tag="all_ages", popularity_score=0.9, featured=True, created_at=now),
        RewardItemRecord(id="lego", age_tag="kid_5_8", popularity_score=0.4, featured=True, created_at=now),
        RewardItemRecord(id="paint", age_tag="kid_5_8", popularity_score=0.7, featured=True, created_at=now),
        RewardItemRecord(id="sweets", age_tag="kid_5_8", popularity_score=1.0, featured=True, blocked=True, created_at=now),
        RewardItemRecord(id="puzzle", age_tag="kid_5_8", popularity_score=0.95, created_at=now),
    )

    assert [reward.id for reward in store.featured()] == ["kite", "paint", "lego"]
    assert [reward.id for reward in store.featured("kid_5_8")] == ["paint", "lego"]
    assert [reward.id for reward in store.featured(limit=1)] == ["kite"]
