"""Settings validation tests."""

from decimal import Decimal

import pytest

from prizepool.config import Settings

PRODUCTION = {
    "database_url": "postgresql+asyncpg://prizepool@db/prizepool",
    "app_env": "production",
    "app_debug": False,
    "cors_origins": "https://prizepool.example",
    "gateway_webhook_secret": "whsec",
    "payout_mode": "live",
}


def test_valid_production_settings():
    settings = Settings(**PRODUCTION)
    assert settings.payout_mode == "live"


@pytest.mark.parametrize(
    "override",
    [
        {"app_debug": True},
        {"cors_origins": "https://prizepool.example, *"},
        {"gateway_webhook_secret": None},
        {"payout_mode": "simulated"},
    ],
)
def test_production_rejects_unsafe_settings(override):
    with pytest.raises(ValueError):
        Settings(**{**PRODUCTION, **override})


def test_development_allows_simulated_payouts():
    settings = Settings(
        database_url="sqlite+aiosqlite://", app_env="development", payout_mode="simulated"
    )
    assert settings.payout_mode == "simulated"


@pytest.mark.parametrize("units, expected", [(2, Decimal("0.01")), (0, Decimal("1"))])
def test_minor_unit(units, expected):
    settings = Settings(database_url="sqlite+aiosqlite://", currency_minor_units=units)
    assert settings.minor_unit == expected
