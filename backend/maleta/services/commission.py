# Overview: Sales total and commission arithmetic for settlements.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from ..money import quantize_cents
from .errors import InvalidCommissionRate


DEFAULT_COMMISSION_RATE = Decimal("0.3")


@dataclass(frozen=True)
class CommissionResult:
    total_sales_cents: int
    commission_cents: int
    rate: Decimal


def resolve_commission_rate(seller_rate, default=None) -> Decimal:
    """
    Seller rate as a Decimal, falling back to the default when unset.

    An explicit 0 is a valid rate. Floats are converted through str() so
    0.3 means Decimal("0.3"), not its binary approximation.
    """
    if seller_rate is None or seller_rate == "":
        seller_rate = DEFAULT_COMMISSION_RATE if default is None else default
    rate = seller_rate if isinstance(seller_rate, Decimal) else Decimal(str(seller_rate))
    if rate < 0 or rate > 1:
        raise InvalidCommissionRate(f"commission rate must be between 0 and 1, got {rate}")
    return rate


def calculate_commission(prices_cents: Iterable[int], commission_rate) -> CommissionResult:
    """
    total_sales = sum of unit prices of the sold items (each item counts once,
    regardless of its quantity); commission = total_sales * rate, rounded
    half-up to the cent.

    Integer cents and Decimal keep the result identical across calls.
    """
    rate = resolve_commission_rate(commission_rate)
    total = sum(int(p or 0) for p in prices_cents)
    commission = quantize_cents(Decimal(total) * rate)
    return CommissionResult(total_sales_cents=total, commission_cents=commission, rate=rate)
