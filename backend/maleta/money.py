from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")


def cents_to_decimal(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return (Decimal(int(cents)) / 100).quantize(CENT)


def format_cents(cents: Optional[int]) -> Optional[str]:
    """Decimal string for JSON output ("50.00"); floats never leave the service."""
    value = cents_to_decimal(cents)
    return None if value is None else str(value)


def quantize_cents(amount: Decimal) -> int:
    """Round a Decimal amount of cents to a whole cent (half-up)."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
