import itertools
from datetime import datetime, timezone

import pytest

from app import create_app
from config import TestingConfig
from extensions import db
from ledger.clock import FrozenClock

# noon UTC: half the business day has elapsed
START = datetime(2026, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def app(clock, tmp_path):
    class Config(TestingConfig):
        LOG_DIR = str(tmp_path / "logs")

    app = create_app(Config, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ledger(app):
    return app.extensions["ledger"]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(ledger):
    """Register users through the normal signup path."""
    counter = itertools.count(1)

    def _make(name=None, referral_code=None, password="secret123"):
        n = next(counter)
        return ledger.accounts.register_user(
            name or f"User {n}", f"user{n}@example.com", password, referral_code=referral_code,
        )

    return _make


@pytest.fixture
def code_of(ledger):
    def _code(user):
        return ledger.referrals.code_for(user.id).code

    return _code


@pytest.fixture
def fund(ledger):
    """Verified deposit on the user's default address; returns that address."""

    def _fund(user, amount, symbol="USDT", address=None):
        address = address or ledger.accounts.resolve_default_address(user.id)
        deposit = ledger.funds.request_deposit(user.id, address, symbol, amount)
        ledger.funds.verify_deposit(deposit.id)
        return address

    return _fund


@pytest.fixture
def chain(make_user, code_of):
    """
    top <- mid <- source: `mid` referred `source`, `top` referred `mid`.
    Returns (source, mid, top).
    """
    top = make_user("Top")
    mid = make_user("Mid", referral_code=code_of(top))
    source = make_user("Source", referral_code=code_of(mid))
    return source, mid, top
