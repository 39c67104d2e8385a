# ledger/payout.py
import logging

from models import ReferralReward, RewardStatus
from ledger.monitoring import GuardedTask
from ledger.store import transactional

logger = logging.getLogger(__name__)


class ReferralPayoutScheduler(GuardedTask):
    """
    Once per business day, after the cutoff, promotes yesterday's pending commissions to paid.

    The last-paid-day marker lives on this object only; after a restart the day's
    payout may run once more, which finds nothing left pending.
    """

    name = "referral_payout"

    def __init__(self, clock, config):
        super().__init__()
        self.clock = clock
        self.config = config
        self.last_paid_day = None

    def _tick(self):
        now = self.clock.now()
        if now.time_of_day < self.config.payout_cutoff:
            return {"skipped": "before_cutoff", "cutoff": self.config.payout_cutoff.strftime("%H:%M")}

        target_day = now.yesterday
        if self.last_paid_day == target_day:
            return {"skipped": "already_paid", "day": target_day.isoformat()}

        result = self.run(target_day, now=now)
        self.last_paid_day = target_day
        return result

    def run(self, day=None, now=None):
        """Pay out pending commissions for one source day (default: business yesterday)."""
        now = now or self.clock.now()
        day = day or now.yesterday

        criteria = [
            ReferralReward.status == RewardStatus.PENDING.value,
            ReferralReward.source_day == day,
        ]
        if self.config.payout_min_amount > 0:
            criteria.append(ReferralReward.amount >= self.config.payout_min_amount)

        with transactional(f"referral payout for {day}"):
            paid = ReferralReward.query.filter(*criteria).update(
                {"status": RewardStatus.PAID.value, "paid_at": now.moment},
                synchronize_session=False,
            )

        if paid:
            logger.info(f"Referral payout for {day}: {paid} commission row(s) marked paid")
        return {"day": day.isoformat(), "paid": paid}
