"""Booking price computation.

All amounts are integer minor currency units (cents). The order of operations
is fixed: subtotal, then the platform fee on the subtotal, then tax on
subtotal plus fee. Each step rounds half-up to a whole cent.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

from vendorhub.modules.booking.schemas import PricingSnapshot

PLATFORM_FEE_RATE = Decimal("0.05")
TAX_RATE = Decimal("0.13")
DEFAULT_CURRENCY = "cad"

_CENTS = Decimal(100)
_QUARTER_HOUR_SECONDS = Decimal(900)


def _round_cents(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


def billable_hours(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours rounded up to the next quarter hour."""
    elapsed = end - start
    seconds = Decimal(elapsed.days * 86400 + elapsed.seconds) + Decimal(elapsed.microseconds) / Decimal(10**6)
    if seconds <= 0:
        raise ValueError("Booking end must be after booking start")
    quarters = (seconds / _QUARTER_HOUR_SECONDS).to_integral_value(rounding=ROUND_CEILING)
    return quarters / Decimal(4)


def calculate_platform_fee(subtotal: int, rate: Decimal = PLATFORM_FEE_RATE) -> int:
    return _round_cents(Decimal(subtotal) * rate)


def calculate_tax(subtotal: int, platform_fee: int, rate: Decimal = TAX_RATE) -> int:
    return _round_cents(Decimal(subtotal + platform_fee) * rate)


def _build_snapshot(
    subtotal: int,
    platform_fee_rate: Decimal,
    tax_rate: Decimal,
    currency: str,
) -> PricingSnapshot:
    platform_fee = calculate_platform_fee(subtotal, platform_fee_rate)
    tax = calculate_tax(subtotal, platform_fee, tax_rate)
    return PricingSnapshot(
        subtotal=subtotal,
        platform_fee=platform_fee,
        tax=tax,
        total=subtotal + platform_fee + tax,
        currency=currency.lower(),
    )


def compute_hourly_price(
    price_per_hour: Decimal | int | str,
    start: datetime,
    end: datetime,
    *,
    platform_fee_rate: Decimal = PLATFORM_FEE_RATE,
    tax_rate: Decimal = TAX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> PricingSnapshot:
    """Price an hourly listing for the window [start, end)."""
    rate = Decimal(str(price_per_hour))
    if rate < 0:
        raise ValueError("Hourly price must not be negative")
    subtotal = _round_cents(rate * billable_hours(start, end) * _CENTS)
    return _build_snapshot(subtotal, platform_fee_rate, tax_rate, currency)


def compute_fixed_price(
    price_per_session: Decimal | int | str,
    *,
    platform_fee_rate: Decimal = PLATFORM_FEE_RATE,
    tax_rate: Decimal = TAX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> PricingSnapshot:
    """Price one session of a fixed listing."""
    price = Decimal(str(price_per_session))
    if price < 0:
        raise ValueError("Session price must not be negative")
    subtotal = _round_cents(price * _CENTS)
    return _build_snapshot(subtotal, platform_fee_rate, tax_rate, currency)
