# ledger/accrual.py
from datetime import timedelta
from decimal import Decimal
import logging

from sqlalchemy import or_

from extensions import db
from models import Subscription, SubscriptionStatus, ProfitLedger
from ledger.monitoring import GuardedTask
from ledger.store import insert_for, quantize_amount, sum_of, to_decimal, transactional

logger = logging.getLogger(__name__)

PROFIT_KEY = ["user_id", "address", "symbol", "day"]


class DailyAccrualEngine(GuardedTask):
    """
    Daily catch-up: credits every fully elapsed day of each active subscription exactly once.

    Today is never credited here; the realtime poster owns the current business date.
    Each day commits on its own (ledger row, commission, last_credited) so a crash
    resumes at the first day that did not commit.
    """

    name = "daily_accrual"

    def __init__(self, clock, commissions):
        super().__init__()
        self.clock = clock
        self.commissions = commissions

    def _tick(self):
        return self.run()

    def run(self, user_id=None):
        """Catch up all active subscriptions (optionally for one user). Safe to call repeatedly."""
        now = self.clock.now()
        today = now.business_date
        yesterday = now.yesterday

        query = Subscription.query.filter(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.start_date <= today,
        )
        if user_id is not None:
            query = query.filter(Subscription.user_id == user_id)
        subscription_ids = [row.id for row in query.with_entities(Subscription.id).order_by(Subscription.id)]

        stats = {
            "day": today.isoformat(),
            "subscriptions": len(subscription_ids),
            "days_credited": 0,
            "days_settled": 0,
            "days_existing": 0,
            "completed": 0,
            "failed": 0,
        }

        for subscription_id in subscription_ids:
            try:
                self._catch_up(subscription_id, today, yesterday, stats)
            except Exception as e:
                db.session.rollback()
                stats["failed"] += 1
                logger.error(f"Accrual failed for subscription {subscription_id}: {e}", exc_info=True)

        if stats["days_credited"] or stats["days_settled"] or stats["completed"]:
            logger.info(
                f"Daily accrual for {today}: credited {stats['days_credited']} day(s), "
                f"settled {stats['days_settled']}, completed {stats['completed']} subscription(s)"
            )
        return stats

    def _catch_up(self, subscription_id, today, yesterday, stats):
        sub = db.session.get(Subscription, subscription_id)
        if sub is None or sub.status != SubscriptionStatus.ACTIVE.value:
            return

        first_uncredited = sub.last_credited + timedelta(days=1) if sub.last_credited else sub.start_date
        ceiling = min(yesterday, sub.end_date)
        credit = quantize_amount(sub.daily_credit)
        key = dict(user_id=sub.user_id, address=sub.address, symbol=sub.symbol)

        day = first_uncredited
        while day <= ceiling:
            self._credit_day(sub.id, key, day, credit, stats)
            day += timedelta(days=1)

        if today > sub.end_date:
            with transactional(f"completing subscription {subscription_id}"):
                done = Subscription.query.filter(
                    Subscription.id == subscription_id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                ).update({"status": SubscriptionStatus.COMPLETED.value}, synchronize_session=False)
            if done:
                stats["completed"] += 1
                logger.info(f"Subscription {subscription_id} completed (ended {sub.end_date})")

    def _credit_day(self, subscription_id, key, day, credit, stats):
        with transactional(f"accrual for subscription {subscription_id} on {day}"):
            stmt = insert_for(ProfitLedger).values(day=day, amount=credit, **key)
            stmt = stmt.on_conflict_do_nothing(index_elements=PROFIT_KEY)
            inserted = db.session.execute(stmt).rowcount == 1

            if inserted:
                self.commissions.credit_referral_delta(key["user_id"], day, credit)
                stats["days_credited"] += 1
            elif self._settle_partial_day(key, day, credit):
                stats["days_settled"] += 1
            else:
                stats["days_existing"] += 1

            # last_credited only moves forward
            Subscription.query.filter(
                Subscription.id == subscription_id,
                or_(Subscription.last_credited.is_(None), Subscription.last_credited < day),
            ).update({"last_credited": day}, synchronize_session=False)

    def _settle_partial_day(self, key, day, credit: Decimal) -> bool:
        """
        Raise a past day left at a pro-rated amount to the full credit.
        Only the caller whose conditional update lands re-posts the commissions.
        """
        criteria = [getattr(ProfitLedger, name) == value for name, value in key.items()]
        criteria.append(ProfitLedger.day == day)

        existing = to_decimal(db.session.query(ProfitLedger.amount).filter(*criteria).scalar())
        if existing >= credit:
            return False

        updated = ProfitLedger.query.filter(*criteria, ProfitLedger.amount < credit).update(
            {"amount": credit}, synchronize_session=False
        )
        if not updated:
            return False

        delta = credit - existing
        # each tier row equals rate x the user's profit total for the day
        day_total = sum_of(ProfitLedger.amount, ProfitLedger.user_id == key["user_id"], ProfitLedger.day == day)
        self.commissions.credit_referral_absolute(key["user_id"], day, day_total)
        logger.info(f"Settled {key['symbol']} profit for user {key['user_id']} on {day}: +{delta}")
        return True
