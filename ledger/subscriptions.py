# ledger/subscriptions.py
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from extensions import db
from models import Subscription, SubscriptionStatus, ProfitLedger
from ledger.exceptions import ValidationError, NotFoundError
from ledger.store import quantize_amount, sum_of, transactional, ZERO
from utils import normalize_symbol, parse_amount, validate_address

logger = logging.getLogger(__name__)

# Explicit transitions a user may request; completion only happens through accrual
ALLOWED_TRANSITIONS = {
    SubscriptionStatus.ACTIVE.value: {SubscriptionStatus.PAUSED.value, SubscriptionStatus.CANCELED.value},
    SubscriptionStatus.PAUSED.value: {SubscriptionStatus.CANCELED.value},
    SubscriptionStatus.CANCELED.value: set(),
    SubscriptionStatus.COMPLETED.value: set(),
}


class SubscriptionService:
    """Principal locks: subscribe, list, pause/cancel and profit reporting."""

    def __init__(self, clock, config, balances):
        self.clock = clock
        self.config = config
        self.balances = balances

    @staticmethod
    def _find(user_id: int, address: str, symbol: str) -> Optional[Subscription]:
        return Subscription.query.filter_by(user_id=user_id, address=address, symbol=symbol).first()

    def create_subscription(self, user_id: int, address, symbol, principal, days) -> Subscription:
        """
        Lock `principal` for `days` days. An existing row for the same (user, address, symbol)
        is replaced and accrual restarts from today.
        """
        address = validate_address(address)
        symbol = normalize_symbol(symbol)
        principal = parse_amount(principal, "principal")
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise ValidationError("Contract length must be a whole number of days")
        daily_rate = self.config.daily_rate_for(days)

        existing = self._find(user_id, address, symbol)
        released = ZERO
        if existing is not None and existing.status == SubscriptionStatus.ACTIVE.value:
            released = Decimal(str(existing.principal))

        # catch-up runs inside the check, so credited profit counts toward the balance
        self.balances.ensure_can_debit(user_id, address, symbol, principal, released=released)

        start = self.clock.today()
        end = Subscription.end_for(start, days)
        with transactional(f"subscription for user {user_id} {symbol} at {address}"):
            sub = self._find(user_id, address, symbol)
            if sub is None:
                sub = Subscription(user_id=user_id, address=address, symbol=symbol)
                db.session.add(sub)
            sub.principal = quantize_amount(principal)
            sub.days = days
            sub.daily_rate = daily_rate
            sub.start_date = start
            sub.end_date = end
            sub.last_credited = None
            sub.status = SubscriptionStatus.ACTIVE.value

        logger.info(
            f"User {user_id} locked {principal} {symbol} at {address} for {days} days "
            f"at {daily_rate} daily ({start} to {end})"
        )
        return sub

    def list_subscriptions(self, user_id: int, address=None) -> List[Subscription]:
        query = Subscription.query.filter(Subscription.user_id == user_id)
        if address:
            query = query.filter(Subscription.address == validate_address(address))
        return query.order_by(Subscription.id).all()

    def set_subscription_status(self, user_id: int, address, symbol, status) -> Subscription:
        address = validate_address(address)
        symbol = normalize_symbol(symbol)
        status = (status or "").strip().lower()
        if status not in (SubscriptionStatus.PAUSED.value, SubscriptionStatus.CANCELED.value):
            raise ValidationError("Status can only be set to 'paused' or 'canceled'")

        sub = self._find(user_id, address, symbol)
        if sub is None:
            raise NotFoundError(f"No {symbol} subscription at {address}")
        if sub.status == status:
            return sub
        if status not in ALLOWED_TRANSITIONS[sub.status]:
            raise ValidationError(f"Cannot change a {sub.status} subscription to {status}")

        # credit fully elapsed days before the lock stops accruing
        self.balances.accrual.run(user_id=user_id)

        with transactional(f"status change for subscription {sub.id}"):
            sub = db.session.get(Subscription, sub.id)
            if status not in ALLOWED_TRANSITIONS[sub.status]:
                raise ValidationError(f"Cannot change a {sub.status} subscription to {status}")
            sub.status = status

        logger.info(f"Subscription {sub.id} for user {user_id} set to {status}")
        return sub

    def _expected_today(self, user_id: int, address: str, today) -> Decimal:
        subs = Subscription.query.filter(
            Subscription.user_id == user_id,
            Subscription.address == address,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.start_date <= today,
            Subscription.end_date >= today,
        ).all()
        return quantize_amount(sum((sub.daily_credit for sub in subs), ZERO))

    def get_profit_today(self, user_id: int, address=None) -> Dict:
        address = self.balances.resolve_address(user_id, address)
        self.balances.catch_up(user_id)

        now = self.clock.now()
        today = now.business_date
        expected = self._expected_today(user_id, address, today)
        credited = sum_of(
            ProfitLedger.amount,
            ProfitLedger.user_id == user_id,
            ProfitLedger.address == address,
            ProfitLedger.day == today,
        )
        return {
            "day": today.isoformat(),
            "address": address,
            "expected": expected,
            "credited": credited,
            "remaining": max(expected - credited, ZERO),
            "fraction": now.fraction_of_day_elapsed,
        }

    def get_profit_summary(self, user_id: int, address=None) -> Dict:
        address = self.balances.resolve_address(user_id, address)
        self.balances.catch_up(user_id)

        today = self.clock.today()
        lifetime = sum_of(ProfitLedger.amount, ProfitLedger.user_id == user_id, ProfitLedger.address == address)
        credited_today = sum_of(
            ProfitLedger.amount,
            ProfitLedger.user_id == user_id,
            ProfitLedger.address == address,
            ProfitLedger.day == today,
        )
        return {
            "address": address,
            "lifetime": lifetime,
            "today": credited_today,
            "expected_today": self._expected_today(user_id, address, today),
        }
