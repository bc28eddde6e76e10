"""Idempotent bonus awarding.

A bonus is credited at most once per ``(wallet_id, dedup_key)``. The check and
the write happen in a single atomic step inside an :class:`AwardLedger`;
a duplicate is reported as :attr:`AwardOutcome.ALREADY_AWARDED`, which is a
normal outcome rather than an error and is never retried.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Optional, Tuple

from .admin import AuditLog
from .exceptions import WalletNotFoundError
from .models import AwardOutcome, AwardReceipt, AwardRequest, BonusResult
from .ops import StructuredLogger
from .seasons import Clock, SystemClock


class AwardLedger(ABC):
    """Storage boundary that records awards and credits wallets atomically."""

    @abstractmethod
    def record_if_absent(self, request: AwardRequest, *, at: datetime) -> AwardOutcome:
        """Record ``request`` and credit its wallet unless the key already exists."""


class InMemoryAwardLedger(AwardLedger):
    """Lock protected ledger for tests and single process use."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._awards: Dict[Tuple[str, str], Tuple[AwardRequest, datetime]] = {}
        self._balances: Dict[str, Tuple[int, int]] = {}

    def open_wallet(self, wallet_id: str, *, balance_pence: int = 0, stars: int = 0) -> None:
        with self._lock:
            self._balances.setdefault(wallet_id, (balance_pence, stars))

    def balance(self, wallet_id: str) -> Tuple[int, int]:
        with self._lock:
            try:
                return self._balances[wallet_id]
            except KeyError as exc:
                raise WalletNotFoundError(f"Wallet '{wallet_id}' does not exist.") from exc

    def awards(self, wallet_id: Optional[str] = None) -> Tuple[AwardRequest, ...]:
        with self._lock:
            return tuple(
                request
                for (wallet, _), (request, _) in self._awards.items()
                if wallet_id is None or wallet == wallet_id
            )

    def record_if_absent(self, request: AwardRequest, *, at: datetime) -> AwardOutcome:
        key = (request.wallet_id, request.dedup_key)
        with self._lock:
            if request.wallet_id not in self._balances:
                raise WalletNotFoundError(f"Wallet '{request.wallet_id}' does not exist.")
            if key in self._awards:
                return AwardOutcome.ALREADY_AWARDED
            self._awards[key] = (request, at)
            pence, stars = self._balances[request.wallet_id]
            self._balances[request.wallet_id] = (pence + request.money_pence, stars + request.stars)
        return AwardOutcome.AWARDED


class IdempotencyGuard:
    """Push bonus decisions through an :class:`AwardLedger` exactly once."""

    def __init__(
        self,
        ledger: AwardLedger,
        *,
        clock: Clock | None = None,
        logger: StructuredLogger | None = None,
        audit: AuditLog | None = None,
    ) -> None:
        self.ledger = ledger
        self._clock = clock or SystemClock()
        self._logger = logger or StructuredLogger()
        self._audit = audit or AuditLog()

    def award(self, wallet_id: str, result: BonusResult, *, child_id: str | None = None) -> AwardReceipt:
        if not result.should_award or not result.dedup_key:
            return AwardReceipt(
                outcome=AwardOutcome.NOT_ELIGIBLE,
                bonus_type=result.bonus_type,
                dedup_key=result.dedup_key,
                wallet_id=wallet_id,
                reason=result.reason,
            )
        request = AwardRequest(
            wallet_id=wallet_id,
            dedup_key=result.dedup_key,
            money_pence=result.money_pence,
            stars=result.stars,
            bonus_type=result.bonus_type,
            reason=result.reason,
        )
        moment = self._clock.now()
        outcome = self.ledger.record_if_absent(request, at=moment)
        receipt = AwardReceipt(
            outcome=outcome,
            bonus_type=result.bonus_type,
            dedup_key=result.dedup_key,
            wallet_id=wallet_id,
            money_pence=result.money_pence if outcome is AwardOutcome.AWARDED else 0,
            stars=result.stars if outcome is AwardOutcome.AWARDED else 0,
            reason=result.reason,
            recorded_at=moment if outcome is AwardOutcome.AWARDED else None,
        )
        if outcome is AwardOutcome.AWARDED:
            self._logger.log(
                "bonus_awarded",
                wallet=wallet_id,
                bonus_type=result.bonus_type.value,
                dedup_key=result.dedup_key,
                money_pence=result.money_pence,
                stars=result.stars,
            )
            self._audit.record(
                "system",
                f"{result.bonus_type.value}_bonus_awarded",
                child_id or wallet_id,
                details={
                    "dedup_key": result.dedup_key,
                    "money_pence": result.money_pence,
                    "stars": result.stars,
                    "reason": result.reason,
                },
                timestamp=moment,
            )
        else:
            self._logger.log(
                "bonus_already_awarded",
                wallet=wallet_id,
                bonus_type=result.bonus_type.value,
                dedup_key=result.dedup_key,
            )
        return receipt


__all__ = ["AwardLedger", "IdempotencyGuard", "InMemoryAwardLedger"]
