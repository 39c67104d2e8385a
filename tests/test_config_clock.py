from datetime import date, datetime, time, timezone
from decimal import Decimal

import pytest

from config import _csv, _rate_table
from ledger.clock import BusinessClock, FrozenClock
from ledger.config import LedgerConfig
from ledger.exceptions import ValidationError


def test_rate_table_parsing():
    assert _rate_table("7:0.02, 15:0.03") == {7: "0.02", 15: "0.03"}
    assert _csv("TRC20, ERC20,,BEP20") == ("TRC20", "ERC20", "BEP20")
    assert _csv("7,15", int) == (7, 15)


def test_ledger_config_from_app(app):
    config = app.extensions["ledger"].config

    assert config.tier_rate(1) == Decimal("0.20")
    assert config.tier_rate(2) == Decimal("0.15")
    assert config.payout_cutoff == time(0, 5)
    assert config.settlement_symbol == "USDT"
    assert config.networks == ("TRC20", "ERC20", "BEP20")
    assert config.validate()[0]


def test_daily_rate_lookup(app):
    config = app.extensions["ledger"].config

    assert config.daily_rate_for(7) == Decimal("0.02")
    assert config.daily_rate_for(60) == Decimal("0.04")
    with pytest.raises(ValidationError):
        config.daily_rate_for(90)
    with pytest.raises(ValidationError):
        config.daily_rate_for(45)


def test_configured_length_outside_rate_table_gets_default_rate():
    config = LedgerConfig({"CONTRACT_DAYS_ALLOWED": (7, 90), "CONTRACT_RATE_TABLE": {7: "0.02"}})

    assert config.daily_rate_for(7) == Decimal("0.02")
    assert config.daily_rate_for(90) == config.default_daily_rate


@pytest.mark.parametrize("overrides", [
    {"REFERRAL_TIER1_RATE": "1.5"},
    {"REFERRAL_TIER1_RATE": "0.6", "REFERRAL_TIER2_RATE": "0.5"},
    {"CONTRACT_RATE_TABLE": {7: "1.2"}},
    {"PAYOUT_MIN_AMOUNT": "-1"},
    {"BUSINESS_TZ_OFFSET_MINUTES": 24 * 60},
    {"FX_FEE_PCT": "1"},
    {"FALLBACK_USDT_PHP": "0"},
    {"PAYOUT_FEE_PHP": "-25"},
])
def test_unsound_configuration_is_flagged(overrides):
    valid, message = LedgerConfig(overrides).validate()

    assert not valid
    assert message


def test_bad_cutoff_fails_fast():
    with pytest.raises(ValueError):
        LedgerConfig({"PAYOUT_CUTOFF": "midnight"})


def test_business_date_follows_offset():
    moment = datetime(2026, 1, 10, 23, 0, tzinfo=timezone.utc)
    clock = BusinessClock(offset_minutes=120, utcnow=lambda: moment)

    now = clock.now()

    assert now.business_date == date(2026, 1, 11)
    assert now.time_of_day == time(1, 0)
    assert now.fraction_of_day_elapsed == Decimal(3600) / Decimal(86400)
    assert now.yesterday == date(2026, 1, 10)


def test_naive_utc_is_accepted():
    clock = BusinessClock(utcnow=lambda: datetime(2026, 1, 10, 6, 0))

    assert clock.now().fraction_of_day_elapsed == Decimal("0.25")


def test_frozen_clock_moves_only_when_told():
    clock = FrozenClock(datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc))

    assert clock.today() == date(2026, 1, 10)
    clock.advance(hours=13)
    assert clock.today() == date(2026, 1, 11)
    clock.set(datetime(2026, 2, 1, tzinfo=timezone.utc))
    assert clock.now().fraction_of_day_elapsed == Decimal(0)
