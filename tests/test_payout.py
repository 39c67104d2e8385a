from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from extensions import db
from models import ReferralReward, RewardStatus
from ledger.config import LedgerConfig
from ledger.payout import ReferralPayoutScheduler


@pytest.fixture
def rewards(make_user):
    """Pending commissions for the day before, the day of and two days before 2026-01-11."""
    earner = make_user()
    source = make_user()
    rows = {}
    for day, amount in ((date(2026, 1, 9), 4), (date(2026, 1, 10), 10), (date(2026, 1, 11), 2)):
        row = ReferralReward(user_id=earner.id, source_user_id=source.id, tier=1,
                             source_day=day, amount=amount, status=RewardStatus.PENDING.value)
        db.session.add(row)
        rows[day] = row
    db.session.commit()
    return {day: row.id for day, row in rows.items()}


def _status(reward_id):
    db.session.expire_all()
    return db.session.get(ReferralReward, reward_id).status


def test_nothing_is_paid_before_cutoff(ledger, clock, rewards):
    clock.set(datetime(2026, 1, 11, 0, 2, tzinfo=timezone.utc))

    result = ledger.payout.tick()

    assert result["skipped"] == "before_cutoff"
    assert all(_status(rid) == RewardStatus.PENDING.value for rid in rewards.values())


def test_after_cutoff_pays_yesterday_once(ledger, clock, rewards):
    clock.set(datetime(2026, 1, 11, 0, 10, tzinfo=timezone.utc))

    first = ledger.payout.tick()
    second = ledger.payout.tick()

    assert first == {"day": "2026-01-10", "paid": 1}
    assert second["skipped"] == "already_paid"
    assert _status(rewards[date(2026, 1, 10)]) == RewardStatus.PAID.value
    assert _status(rewards[date(2026, 1, 9)]) == RewardStatus.PENDING.value
    assert _status(rewards[date(2026, 1, 11)]) == RewardStatus.PENDING.value

    paid = db.session.get(ReferralReward, rewards[date(2026, 1, 10)])
    assert paid.paid_at is not None


def test_next_day_pays_the_following_batch(ledger, clock, rewards):
    clock.set(datetime(2026, 1, 11, 6, 0, tzinfo=timezone.utc))
    ledger.payout.tick()

    clock.set(datetime(2026, 1, 12, 6, 0, tzinfo=timezone.utc))
    result = ledger.payout.tick()

    assert result == {"day": "2026-01-11", "paid": 1}
    assert ledger.payout.last_paid_day == date(2026, 1, 11)


def test_manual_run_for_a_specific_day(ledger, rewards):
    result = ledger.payout.run(date(2026, 1, 9))

    assert result["paid"] == 1
    assert _status(rewards[date(2026, 1, 9)]) == RewardStatus.PAID.value


def test_minimum_amount_holds_small_rows(app, clock, make_user):
    config = LedgerConfig({**app.config, "PAYOUT_MIN_AMOUNT": "5"})
    scheduler = ReferralPayoutScheduler(clock, config)
    earner, source, other = make_user(), make_user(), make_user()
    day = date(2026, 1, 9)
    db.session.add_all([
        ReferralReward(user_id=earner.id, source_user_id=source.id, tier=1, source_day=day, amount=3),
        ReferralReward(user_id=earner.id, source_user_id=other.id, tier=1, source_day=day, amount=Decimal("12")),
    ])
    db.session.commit()

    assert scheduler.run(day)["paid"] == 1
    statuses = sorted((r.amount, r.status) for r in ReferralReward.query.all())
    assert statuses == [(Decimal("3"), "pending"), (Decimal("12"), "paid")]


def test_paid_rewards_raise_spendable(ledger, clock, fund, chain):
    source, mid, _ = chain
    address = fund(source, 1000)
    ledger.subscriptions.create_subscription(source.id, address, "USDT", 1000, 15)
    fund(mid, 1)

    clock.advance(days=1)  # 2026-01-11 12:00
    ledger.accrual.run()
    ledger.payout.tick()

    assert ledger.balances.get_balance(mid.id, "USDT")["spendable"] == Decimal("7")
