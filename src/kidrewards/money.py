"""Utilities for working with pence and star amounts."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

PENNY = Decimal("0.01")
DEFAULT_PENCE_PER_STAR = 10


def require_non_negative(amount: int, *, label: str = "Amount") -> int:
    """Ensure ``amount`` is an integer of zero or more."""

    if amount < 0:
        raise ValueError(f"{label} must be zero or greater.")
    return int(amount)


def pence_to_stars(pence: int, pence_per_star: int = DEFAULT_PENCE_PER_STAR) -> int:
    """Return the whole number of stars ``pence`` is worth (rounded down)."""

    if pence_per_star <= 0:
        raise ValueError("pence_per_star must be greater than zero.")
    if pence <= 0:
        return 0
    return pence // pence_per_star


def format_pence(pence: int) -> str:
    """Return ``pence`` as a currency formatted string (e.g. ``£12.34``)."""

    pounds = (Decimal(pence) / Decimal(100)).quantize(PENNY, rounding=ROUND_HALF_UP)
    sign = "-" if pounds < 0 else ""
    return f"{sign}£{abs(pounds):,.2f}"
