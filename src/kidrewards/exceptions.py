"""Custom exception hierarchy for the kidrewards package."""

from __future__ import annotations


class KidRewardsError(Exception):
    """Base class for all kidrewards specific errors."""


class ChildNotFoundError(KidRewardsError):
    """Raised when a child lookup fails."""


class WalletNotFoundError(KidRewardsError):
    """Raised when an award targets a wallet that does not exist."""


class StoreUnavailableError(KidRewardsError):
    """Raised when the backing store cannot be reached or queried."""
