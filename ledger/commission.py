# ledger/commission.py
from decimal import Decimal
from typing import Dict, NamedTuple, Optional
import logging

from extensions import db
from models import ProfitLedger, ReferralRelation, ReferralReward, RewardStatus
from ledger.exceptions import TransientStoreError
from ledger.store import insert_for, quantize_amount, sum_of, to_decimal, transactional, ZERO

logger = logging.getLogger(__name__)

ADDITIVE = "add"
ABSOLUTE = "set"

COMMISSION_KEY = ["user_id", "source_user_id", "source_day", "tier"]
ADD_ATTEMPTS = 5


class Uplines(NamedTuple):
    level1: Optional[int]
    level2: Optional[int]

    def tiers(self):
        """(tier, earner) pairs for the levels that exist."""
        if self.level1:
            yield 1, self.level1
            if self.level2:
                yield 2, self.level2


class CommissionPropagator:
    """
    Posts referral commissions on a source user's daily profit to its two uplines.

    The referral graph is acyclic by construction (a referee is linked once, at signup),
    and the lookup is a fixed two-hop walk to match the two-entry rate table.
    """

    def __init__(self, config):
        self.config = config

    @staticmethod
    def referrer_of(user_id: int) -> Optional[int]:
        row = db.session.query(ReferralRelation.referrer_id).filter(
            ReferralRelation.referee_id == user_id
        ).first()
        return int(row[0]) if row else None

    def find_uplines(self, source_user_id: int) -> Uplines:
        level1 = self.referrer_of(source_user_id)
        level2 = self.referrer_of(level1) if level1 else None
        return Uplines(level1, level2)

    def _upsert(self, earner_id: int, source_id: int, tier: int, day, amount: Decimal, mode: str) -> bool:
        """Insert or update one commission row. Paid rows are left untouched; returns False for those."""
        if not earner_id or not source_id or not day:
            return False
        amount = quantize_amount(amount)
        if amount <= ZERO:
            return False

        table = ReferralReward.__table__
        stmt = insert_for(ReferralReward).values(
            user_id=earner_id,
            source_user_id=source_id,
            tier=tier,
            source_day=day,
            amount=amount,
            status=RewardStatus.PENDING.value,
        )
        if mode == ADDITIVE:
            stmt = stmt.on_conflict_do_nothing(index_elements=COMMISSION_KEY)
            if db.session.execute(stmt).rowcount == 1:
                return True
            return self._add_to_pending(earner_id, source_id, tier, day, amount)

        stmt = stmt.on_conflict_do_update(
            index_elements=COMMISSION_KEY,
            set_={"amount": stmt.excluded.amount, "status": RewardStatus.PENDING.value},
            where=table.c.status == RewardStatus.PENDING.value,
        )
        if db.session.execute(stmt).rowcount == 0:
            self._log_paid(earner_id, source_id, tier, day, amount, mode)
            return False
        return True

    def _add_to_pending(self, earner_id, source_id, tier, day, amount: Decimal) -> bool:
        """Compare-and-set increment of an existing pending row; the sum is done in Decimal."""
        criteria = [
            ReferralReward.user_id == earner_id,
            ReferralReward.source_user_id == source_id,
            ReferralReward.tier == tier,
            ReferralReward.source_day == day,
        ]
        for _ in range(ADD_ATTEMPTS):
            row = db.session.query(ReferralReward.amount, ReferralReward.status).filter(*criteria).first()
            if row is None or row.status != RewardStatus.PENDING.value:
                self._log_paid(earner_id, source_id, tier, day, amount, ADDITIVE)
                return False
            current = to_decimal(row.amount)
            updated = ReferralReward.query.filter(
                *criteria,
                ReferralReward.status == RewardStatus.PENDING.value,
                ReferralReward.amount == current,
            ).update({"amount": quantize_amount(current + amount)}, synchronize_session=False)
            if updated:
                return True
        raise TransientStoreError(
            f"Commission for earner {earner_id} from user {source_id} tier {tier} on {day} kept changing"
        )

    @staticmethod
    def _log_paid(earner_id, source_id, tier, day, amount, mode):
        logger.warning(
            f"Commission for earner {earner_id} from user {source_id} tier {tier} on {day} "
            f"is already paid; dropping {mode} adjustment of {amount}"
        )

    def _credit(self, source_user_id: int, day, profit: Decimal, mode: str) -> int:
        uplines = self.find_uplines(source_user_id)
        posted = 0
        for tier, earner_id in uplines.tiers():
            amount = Decimal(profit) * self.config.tier_rate(tier)
            if self._upsert(earner_id, source_user_id, tier, day, amount, mode):
                posted += 1
        return posted

    def credit_referral_delta(self, source_user_id: int, day, delta_profit) -> int:
        """Add a profit delta (daily catch-up of past days). Caller commits."""
        return self._credit(source_user_id, day, delta_profit, ADDITIVE)

    def credit_referral_absolute(self, source_user_id: int, day, total_profit_for_day) -> int:
        """Set the full-day-so-far figure (realtime poster for today). Caller commits."""
        return self._credit(source_user_id, day, total_profit_for_day, ABSOLUTE)

    def rerate_day(self, day) -> Dict:
        """
        Re-post every source user's commissions for `day` at the current tier rates,
        from that user's total profit for the day. Paid rows are left as they were.
        """
        user_ids = [
            row[0] for row in db.session.query(ProfitLedger.user_id)
            .filter(ProfitLedger.day == day)
            .distinct()
            .order_by(ProfitLedger.user_id)
        ]

        posted = 0
        for user_id in user_ids:
            with transactional(f"re-rating commissions from user {user_id} on {day}"):
                total = sum_of(ProfitLedger.amount, ProfitLedger.user_id == user_id, ProfitLedger.day == day)
                posted += self.credit_referral_absolute(user_id, day, total)

        logger.info(f"Re-rated commissions for {day}: {len(user_ids)} source user(s), {posted} row(s) reset")
        return {"day": day.isoformat(), "users": len(user_ids), "commissions": posted}
