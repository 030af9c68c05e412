from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from vendorhub.modules.booking.pricing import (
    billable_hours,
    calculate_platform_fee,
    calculate_tax,
    compute_fixed_price,
    compute_hourly_price,
)

START = datetime(2026, 3, 5, 14, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    ("minutes", "expected"),
    [
        (130, Decimal("2.25")),
        (120, Decimal("2")),
        (59, Decimal("1")),
        (1, Decimal("0.25")),
        (46, Decimal("1")),
    ],
)
def test_billable_hours_rounds_up_to_quarter_hour(minutes: int, expected: Decimal) -> None:
    assert billable_hours(START, START + timedelta(minutes=minutes)) == expected


def test_billable_hours_never_rounds_down_a_partial_second() -> None:
    assert billable_hours(START, START + timedelta(hours=1, seconds=1)) == Decimal("1.25")


def test_billable_hours_rejects_empty_window() -> None:
    with pytest.raises(ValueError):
        billable_hours(START, START)


def test_hourly_price_breakdown() -> None:
    snapshot = compute_hourly_price(Decimal("100.00"), START, START + timedelta(hours=2, minutes=10))

    assert snapshot.subtotal == 22500
    assert snapshot.platform_fee == 1125
    assert snapshot.tax == 3071
    assert snapshot.total == 26696
    assert snapshot.currency == "cad"


def test_fixed_price_ignores_window_and_uses_configured_rates() -> None:
    snapshot = compute_fixed_price(
        "80",
        platform_fee_rate=Decimal("0.10"),
        tax_rate=Decimal("0"),
        currency="USD",
    )

    assert (snapshot.subtotal, snapshot.platform_fee, snapshot.tax, snapshot.total) == (8000, 800, 0, 8800)
    assert snapshot.currency == "usd"


def test_fee_and_tax_round_half_up() -> None:
    assert calculate_platform_fee(10) == 1
    assert calculate_platform_fee(9) == 0
    assert calculate_tax(100, 0, Decimal("0.125")) == 13


def test_negative_prices_are_rejected() -> None:
    with pytest.raises(ValueError):
        compute_fixed_price("-1")
    with pytest.raises(ValueError):
        compute_hourly_price("-5", START, START + timedelta(hours=1))
