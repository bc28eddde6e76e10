import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import pytest

from kidrewards.admin import AuditLog
from kidrewards.awards import IdempotencyGuard, InMemoryAwardLedger
from kidrewards.exceptions import WalletNotFoundError
from kidrewards.models import AwardOutcome, BonusResult, BonusType
from kidrewards.ops import StructuredLogger
from kidrewards.seasons import FixedClock

NOW = datetime(2026, 10, 19, 12, 0)


def winning(dedup_key: str = "achievement:ava:10", money: int = 200, stars: int = 5) -> BonusResult:
    return BonusResult(
        bonus_type=BonusType.ACHIEVEMENT,
        should_award=True,
        money_pence=money,
        stars=stars,
        reason="Completed 10 chores!",
        dedup_key=dedup_key,
    )


@pytest.fixture
def ledger() -> InMemoryAwardLedger:
    ledger = InMemoryAwardLedger()
    ledger.open_wallet("wallet-1", balance_pence=1000, stars=3)
    return ledger


@pytest.fixture
def guard(ledger: InMemoryAwardLedger) -> IdempotencyGuard:
    clock = FixedClock(NOW)
    return IdempotencyGuard(ledger, clock=clock, logger=StructuredLogger(clock=clock), audit=AuditLog())


def test_first_award_credits_wallet(guard: IdempotencyGuard, ledger: InMemoryAwardLedger) -> None:
    receipt = guard.award("wallet-1", winning(), child_id="ava")

    assert receipt.outcome is AwardOutcome.AWARDED
    assert receipt.awarded
    assert receipt.recorded_at == NOW
    assert ledger.balance("wallet-1") == (1200, 8)


def test_duplicate_award_is_reported_and_not_credited(guard: IdempotencyGuard, ledger: InMemoryAwardLedger) -> None:
    guard.award("wallet-1", winning())
    repeat = guard.award("wallet-1", winning())

    assert repeat.outcome is AwardOutcome.ALREADY_AWARDED
    assert (repeat.money_pence, repeat.stars) == (0, 0)
    assert ledger.balance("wallet-1") == (1200, 8)
    assert len(ledger.awards("wallet-1")) == 1


def test_same_key_on_another_wallet_is_independent(guard: IdempotencyGuard, ledger: InMemoryAwardLedger) -> None:
    ledger.open_wallet("wallet-2")

    guard.award("wallet-1", winning())
    other = guard.award("wallet-2", winning())

    assert other.awarded
    assert ledger.balance("wallet-2") == (200, 5)


def test_ineligible_results_are_not_recorded(guard: IdempotencyGuard, ledger: InMemoryAwardLedger) -> None:
    receipt = guard.award("wallet-1", BonusResult.not_eligible(BonusType.MONTHLY))

    assert receipt.outcome is AwardOutcome.NOT_ELIGIBLE
    assert ledger.awards() == ()
    assert ledger.balance("wallet-1") == (1000, 3)


def test_unknown_wallet_raises(guard: IdempotencyGuard) -> None:
    with pytest.raises(WalletNotFoundError):
        guard.award("missing", winning())


def test_award_is_logged_and_audited(ledger: InMemoryAwardLedger) -> None:
    clock = FixedClock(NOW)
    logger = StructuredLogger(clock=clock)
    audit = AuditLog()
    guard = IdempotencyGuard(ledger, clock=clock, logger=logger, audit=audit)

    guard.award("wallet-1", winning(), child_id="ava")
    guard.award("wallet-1", winning(), child_id="ava")

    awarded = logger.tail(event="bonus_awarded")
    repeated = logger.tail(event="bonus_already_awarded")
    assert len(awarded) == 1
    assert awarded[0]["dedup_key"] == "achievement:ava:10"
    assert awarded[0]["timestamp"] == NOW.isoformat()
    assert len(repeated) == 1
    entries = audit.entries(action="achievement_bonus_awarded")
    assert len(entries) == 1
    assert entries[0].actor == "system"
    assert entries[0].target == "ava"
    assert entries[0].details["money_pence"] == 200
    assert audit.latest() is entries[0]


def test_concurrent_awards_credit_exactly_once(guard: IdempotencyGuard, ledger: InMemoryAwardLedger) -> None:
    with ThreadPoolExecutor(max_workers=16) as pool:
        receipts = list(pool.map(lambda _: guard.award("wallet-1", winning()), range(100)))

    outcomes = [receipt.outcome for receipt in receipts]
    assert outcomes.count(AwardOutcome.AWARDED) == 1
    assert outcomes.count(AwardOutcome.ALREADY_AWARDED) == 99
    assert ledger.balance("wallet-1") == (1200, 8)


def test_structured_logger_appends_json_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=path, clock=FixedClock(NOW))

    logger.log("rewards_ranked", family="fam", count=3)
    logger.log("bonus_evaluated", family="fam", eligible=["monthly"])

    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["event"] for line in lines] == ["rewards_ranked", "bonus_evaluated"]
    assert logger.tail(1)[0]["eligible"] == ["monthly"]
