# ledger/realtime.py
import logging

from extensions import db
from models import Subscription, SubscriptionStatus, ProfitLedger
from ledger.accrual import PROFIT_KEY
from ledger.monitoring import GuardedTask
from ledger.store import insert_for, quantize_amount, sum_of, transactional

logger = logging.getLogger(__name__)


class RealtimeProrationPoster(GuardedTask):
    """
    Keeps today's profit rows equal to principal x rate x fraction-of-day-elapsed.

    Rows are overwritten (absolute), never incremented, so re-running a tick any
    number of times converges on the same state.
    """

    name = "realtime_proration"

    def __init__(self, clock, commissions):
        super().__init__()
        self.clock = clock
        self.commissions = commissions

    def _tick(self):
        return self.run()

    def run(self, user_id=None):
        now = self.clock.now()
        today = now.business_date
        fraction = now.fraction_of_day_elapsed

        query = Subscription.query.filter(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.start_date <= today,
            Subscription.end_date >= today,
        )
        if user_id is not None:
            query = query.filter(Subscription.user_id == user_id)
        subscriptions = query.order_by(Subscription.id).all()

        touched = set()
        with transactional(f"realtime profit posting for {today}"):
            for sub in subscriptions:
                partial = quantize_amount(sub.daily_credit * fraction)
                stmt = insert_for(ProfitLedger).values(
                    user_id=sub.user_id,
                    address=sub.address,
                    symbol=sub.symbol,
                    day=today,
                    amount=partial,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=PROFIT_KEY,
                    set_={"amount": stmt.excluded.amount},
                )
                db.session.execute(stmt)
                touched.add(sub.user_id)

        commissions_posted = 0
        for source_user_id in sorted(touched):
            with transactional(f"realtime commissions for user {source_user_id} on {today}"):
                total_today = sum_of(
                    ProfitLedger.amount,
                    ProfitLedger.user_id == source_user_id,
                    ProfitLedger.day == today,
                )
                commissions_posted += self.commissions.credit_referral_absolute(source_user_id, today, total_today)

        logger.debug(
            f"Realtime posting for {today} at {fraction:.6f} of day: "
            f"{len(subscriptions)} subscription(s), {len(touched)} user(s), {commissions_posted} commission row(s)"
        )
        return {
            "day": today.isoformat(),
            "fraction": str(fraction),
            "subscriptions": len(subscriptions),
            "users": len(touched),
            "commissions": commissions_posted,
        }
