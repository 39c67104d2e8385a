from datetime import date
from decimal import Decimal

from extensions import db
from models import ProfitLedger, ReferralReward, RewardStatus

DAY = date(2026, 1, 10)


def _reward(earner, tier=None):
    query = ReferralReward.query.filter_by(user_id=earner.id, source_day=DAY)
    if tier:
        query = query.filter_by(tier=tier)
    return query.one()


def test_two_tier_split_on_profit(ledger, chain):
    source, mid, top = chain

    posted = ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("100"))
    db.session.commit()

    assert posted == 2
    assert _reward(mid, tier=1).amount == Decimal("20")
    assert _reward(top, tier=2).amount == Decimal("15")
    assert _reward(mid).status == RewardStatus.PENDING.value


def test_uplines_are_two_hops(ledger, chain, make_user, code_of):
    source, mid, top = chain
    grandchild = make_user("Below", referral_code=code_of(source))

    uplines = ledger.commissions.find_uplines(grandchild.id)

    assert uplines.level1 == source.id
    assert uplines.level2 == mid.id
    assert list(uplines.tiers()) == [(1, source.id), (2, mid.id)]


def test_single_upline_posts_tier_one_only(ledger, make_user, code_of):
    referrer = make_user()
    user = make_user(referral_code=code_of(referrer))

    posted = ledger.commissions.credit_referral_delta(user.id, DAY, Decimal("50"))
    db.session.commit()

    assert posted == 1
    assert ReferralReward.query.count() == 1
    assert _reward(referrer).tier == 1


def test_no_uplines_is_a_no_op(ledger, make_user):
    user = make_user()

    assert ledger.commissions.credit_referral_delta(user.id, DAY, Decimal("100")) == 0
    assert ReferralReward.query.count() == 0


def test_additive_and_absolute_sequence(ledger, chain):
    """Whatever the mix of postings, the row ends at rate x the day's profit."""
    source, mid, top = chain
    commissions = ledger.commissions

    commissions.credit_referral_absolute(source.id, DAY, Decimal("50"))
    commissions.credit_referral_absolute(source.id, DAY, Decimal("70"))
    commissions.credit_referral_delta(source.id, DAY, Decimal("30"))
    db.session.commit()

    assert _reward(mid).amount == Decimal("20")   # 20% of 100
    assert _reward(top).amount == Decimal("15")   # 15% of 100
    assert ReferralReward.query.count() == 2


def test_zero_or_negative_profit_posts_nothing(ledger, chain):
    source, _, _ = chain

    assert ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("0")) == 0
    assert ledger.commissions.credit_referral_absolute(source.id, DAY, Decimal("-5")) == 0
    assert ReferralReward.query.count() == 0


def test_paid_rows_are_not_adjusted(ledger, clock, chain):
    source, mid, top = chain
    ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("100"))
    db.session.commit()

    clock.advance(days=1)
    ledger.payout.run(DAY)

    posted = ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("10"))
    db.session.commit()

    assert posted == 0
    db.session.expire_all()
    row = _reward(mid)
    assert row.status == RewardStatus.PAID.value
    assert row.amount == Decimal("20")


def _profit(user, ledger, amount, day=DAY):
    db.session.add(ProfitLedger(
        user_id=user.id,
        address=ledger.accounts.resolve_default_address(user.id),
        symbol="USDT",
        day=day,
        amount=Decimal(amount),
    ))
    db.session.commit()


def test_rerate_day_applies_current_rates(ledger, chain, monkeypatch):
    source, mid, top = chain
    _profit(source, ledger, "100")
    ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("100"))
    db.session.commit()

    monkeypatch.setitem(ledger.config.tier_rates, 1, Decimal("0.25"))
    result = ledger.commissions.rerate_day(DAY)

    assert result == {"day": DAY.isoformat(), "users": 1, "commissions": 2}
    db.session.expire_all()
    assert _reward(mid).amount == Decimal("25")
    assert _reward(top).amount == Decimal("15")


def test_rerate_day_leaves_paid_rows(ledger, chain, monkeypatch):
    source, mid, top = chain
    _profit(source, ledger, "100")
    ledger.commissions.credit_referral_delta(source.id, DAY, Decimal("100"))
    db.session.commit()
    ledger.payout.run(DAY)

    monkeypatch.setitem(ledger.config.tier_rates, 1, Decimal("0.25"))
    result = ledger.commissions.rerate_day(DAY)

    assert result["commissions"] == 0
    db.session.expire_all()
    assert _reward(mid).amount == Decimal("20")
    assert _reward(mid).status == RewardStatus.PAID.value


def test_rerate_day_without_profit(ledger):
    assert ledger.commissions.rerate_day(DAY) == {"day": DAY.isoformat(), "users": 0, "commissions": 0}


def test_settled_day_commission_is_exact_rate_of_full_profit(ledger, clock, fund, chain):
    """Half a day of 12e-18 posts nothing at 15%; the settled day must post quantize(12e-18 x 0.15)."""
    source, mid, top = chain
    address = fund(source, 1)
    ledger.subscriptions.create_subscription(source.id, address, "USDT", "0.0000000000000006", 7)
    ledger.realtime.run()

    clock.advance(days=1)
    ledger.accrual.run()

    db.session.expire_all()
    assert ProfitLedger.query.filter_by(user_id=source.id, day=DAY).one().amount == Decimal("12E-18")
    assert _reward(mid, tier=1).amount == Decimal("2E-18")
    assert _reward(top, tier=2).amount == Decimal("1E-18")
