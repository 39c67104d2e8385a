from datetime import date
from decimal import Decimal

from models import ProfitLedger, ReferralReward


def _today_rows(user):
    return ProfitLedger.query.filter_by(user_id=user.id, day=date(2026, 1, 10)).all()


def test_posts_pro_rated_profit_for_today(ledger, fund, make_user):
    user = make_user()
    address = fund(user, 1000)
    ledger.subscriptions.create_subscription(user.id, address, "USDT", 1000, 15)

    result = ledger.realtime.run()

    assert result["subscriptions"] == 1
    assert result["fraction"] == "0.5"
    rows = _today_rows(user)
    assert len(rows) == 1
    assert rows[0].amount == Decimal("15")


def test_later_tick_overwrites_the_same_row(ledger, clock, fund, make_user):
    user = make_user()
    address = fund(user, 1000)
    ledger.subscriptions.create_subscription(user.id, address, "USDT", 1000, 15)

    ledger.realtime.run()
    clock.advance(hours=6)
    ledger.realtime.run()
    ledger.realtime.run()

    rows = _today_rows(user)
    assert len(rows) == 1
    assert rows[0].amount == Decimal("22.5")


def test_commissions_follow_todays_total(ledger, clock, fund, chain):
    source, mid, top = chain
    address = fund(source, 1000)
    ledger.subscriptions.create_subscription(source.id, address, "USDT", 1000, 15)

    ledger.realtime.run()
    clock.advance(hours=6)
    ledger.realtime.run()

    tier1 = ReferralReward.query.filter_by(user_id=mid.id, tier=1).one()
    tier2 = ReferralReward.query.filter_by(user_id=top.id, tier=2).one()
    assert tier1.amount == Decimal("4.5")    # 20% of 22.5
    assert tier2.amount == Decimal("3.375")  # 15% of 22.5


def test_day_converges_once_settled(ledger, clock, fund, chain):
    """Half a day from the realtime poster, the rest from the daily catch-up."""
    source, mid, top = chain
    address = fund(source, 1000)
    ledger.subscriptions.create_subscription(source.id, address, "USDT", 1000, 15)
    ledger.realtime.run()

    clock.advance(days=1)
    ledger.accrual.run()

    day = date(2026, 1, 10)
    assert ProfitLedger.query.filter_by(user_id=source.id, day=day).one().amount == Decimal("30")
    assert ReferralReward.query.filter_by(user_id=mid.id, source_day=day).one().amount == Decimal("6")
    assert ReferralReward.query.filter_by(user_id=top.id, source_day=day).one().amount == Decimal("4.5")


def test_inactive_window_is_not_posted(ledger, clock, fund, make_user):
    user = make_user()
    address = fund(user, 1000)
    ledger.subscriptions.create_subscription(user.id, address, "USDT", 1000, 7)

    clock.advance(days=10)
    result = ledger.realtime.run()

    assert result["subscriptions"] == 0


def test_overlapping_tick_is_skipped(ledger):
    ledger.realtime._in_flight.acquire()
    try:
        assert ledger.realtime.running
        assert ledger.realtime.tick() is None
    finally:
        ledger.realtime._in_flight.release()

    assert ledger.realtime.monitor.skips == 1
    assert ledger.realtime.monitor.runs == 0


def test_failed_tick_is_recorded_not_raised(ledger, monkeypatch):
    def boom(user_id=None):
        raise RuntimeError("store went away")

    monkeypatch.setattr(ledger.realtime, "run", boom)

    assert ledger.realtime.tick() is None
    report = ledger.realtime.monitor.health_report()
    assert report["failures"] == 1
    assert "store went away" in report["last_error"]
    assert not ledger.realtime.running
