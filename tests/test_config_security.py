from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from vendorhub.core.config import Settings
from vendorhub.core.security import create_access_token, decode_token


def test_default_secret_key_allowed_in_development() -> None:
    settings = Settings(_env_file=None, app_env="development", secret_key="change-me")
    assert settings.secret_key == "change-me"


def test_default_secret_key_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            app_env="production",
            secret_key="change-me",
            stripe_secret_key="sk_live_x",
            stripe_webhook_secret="whsec_x",
        )


def test_placeholder_secret_key_prefix_rejected_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(
            _env_file=None,
            app_env="production",
            secret_key="change-me-in-production",
            stripe_secret_key="sk_live_x",
            stripe_webhook_secret="whsec_x",
        )


def test_stripe_keys_required_in_production() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production", secret_key="super-secure-value")


def test_production_settings_with_real_secrets_are_accepted() -> None:
    settings = Settings(
        _env_file=None,
        app_env="production",
        secret_key="super-secure-value",
        stripe_secret_key="sk_live_x",
        stripe_webhook_secret="whsec_x",
    )
    assert settings.stripe_webhook_secret == "whsec_x"


def test_pricing_and_window_defaults() -> None:
    settings = Settings(_env_file=None, default_currency=" CAD ")

    assert settings.default_currency == "cad"
    assert settings.platform_fee_rate == Decimal("0.05")
    assert settings.tax_rate == Decimal("0.13")
    assert (settings.booking_min_days_ahead, settings.booking_max_days_ahead) == (1, 88)


def test_booking_window_bounds_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, booking_min_days_ahead=10, booking_max_days_ahead=5)


def test_access_token_round_trip_and_tampering() -> None:
    token = create_access_token("user-1", role="client")

    payload = decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["type"] == "access"

    with pytest.raises(HTTPException) as exc:
        decode_token(token + "x")
    assert exc.value.status_code == 401
