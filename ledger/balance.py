# ledger/balance.py
from decimal import Decimal
from typing import Dict
import logging

from models import (
    Deposit, DepositStatus, Withdrawal, BankCashout, Subscription, SubscriptionStatus,
    ProfitLedger, ACTIVE_PAYOUT_STATUSES,
)
from ledger.exceptions import InsufficientFundsError, ValidationError
from ledger.referrals import referral_balance_contribution
from ledger.store import sum_of, ZERO
from utils import normalize_symbol, validate_address

logger = logging.getLogger(__name__)


class BalanceAggregator:
    """
    Spendable = verified deposits - active withdrawals - active cash-outs
                - active subscription principal + profit credits + paid referral rewards

    The aggregates are separate reads with no enclosing transaction; a posting that
    lands mid-read is picked up on the next query.
    """

    def __init__(self, config, accrual, realtime, address_resolver):
        self.config = config
        self.accrual = accrual
        self.realtime = realtime
        self.address_resolver = address_resolver

    def resolve_address(self, user_id: int, address=None) -> str:
        if address:
            return validate_address(address)
        resolved = self.address_resolver(user_id)
        if not resolved:
            raise ValidationError("No wallet address on file for this user")
        return resolved

    def catch_up(self, user_id: int):
        """Bring the user's ledger up to the current instant before reading it."""
        self.accrual.run(user_id=user_id)
        self.realtime.run(user_id=user_id)

    def referral_paid(self, user_id: int) -> Decimal:
        return referral_balance_contribution(user_id)

    def components(self, user_id: int, address: str, symbol: str) -> Dict[str, Decimal]:
        scope = dict(user_id=user_id, address=address, symbol=symbol)

        def scoped(model):
            return [getattr(model, name) == value for name, value in scope.items()]

        deposits = sum_of(Deposit.amount, *scoped(Deposit), Deposit.status == DepositStatus.VERIFIED.value)
        pending_deposits = sum_of(Deposit.amount, *scoped(Deposit), Deposit.status == DepositStatus.PENDING.value)
        withdrawals = sum_of(
            Withdrawal.amount, *scoped(Withdrawal), Withdrawal.status.in_(ACTIVE_PAYOUT_STATUSES)
        )
        cashouts = sum_of(
            BankCashout.amount, *scoped(BankCashout), BankCashout.status.in_(ACTIVE_PAYOUT_STATUSES)
        )
        active_locks = sum_of(
            Subscription.principal, *scoped(Subscription), Subscription.status == SubscriptionStatus.ACTIVE.value
        )
        profit = sum_of(ProfitLedger.amount, *scoped(ProfitLedger))
        # Commissions are settled in a single asset
        referral_paid = self.referral_paid(user_id) if symbol == self.config.settlement_symbol else ZERO

        spendable = deposits - withdrawals - cashouts - active_locks + profit + referral_paid
        return {
            "deposits": deposits,
            "pending_deposits": pending_deposits,
            "withdrawals": withdrawals,
            "cashouts": cashouts,
            "active_locks": active_locks,
            "profit_credited": profit,
            "referral_paid": referral_paid,
            "spendable": spendable,
        }

    def compute_spendable(self, user_id: int, address: str, symbol: str, catch_up: bool = True) -> Decimal:
        """Raw spendable figure; may be negative if the ledger is inconsistent."""
        if catch_up:
            self.catch_up(user_id)
        return self.components(user_id, address, symbol)["spendable"]

    def get_balance(self, user_id: int, symbol: str, address=None, catch_up: bool = True) -> Dict:
        symbol = normalize_symbol(symbol)
        address = self.resolve_address(user_id, address)
        if catch_up:
            self.catch_up(user_id)

        parts = self.components(user_id, address, symbol)
        if parts["spendable"] < 0:
            logger.warning(
                f"Negative spendable {parts['spendable']} for user {user_id} {symbol} at {address}; reporting 0"
            )
        return {
            "user_id": user_id,
            "address": address,
            "symbol": symbol,
            "spendable": max(parts["spendable"], ZERO),
            "pending_deposits": parts["pending_deposits"],
            "active_locks": parts["active_locks"],
            "profit_credited": parts["profit_credited"],
            "referral_paid": parts["referral_paid"],
            "deposits": parts["deposits"],
            "withdrawals": parts["withdrawals"],
            "cashouts": parts["cashouts"],
        }

    def ensure_can_debit(self, user_id: int, address: str, symbol: str, amount: Decimal,
                         released: Decimal = ZERO) -> Decimal:
        """
        Recompute spendable (profit included) and reject a debit larger than it.
        `released` is principal that the debit itself frees, e.g. a lock being replaced.
        """
        spendable = self.compute_spendable(user_id, address, symbol) + released
        if amount > spendable:
            logger.info(
                f"Debit of {amount} {symbol} rejected for user {user_id} at {address}: spendable {spendable}"
            )
            raise InsufficientFundsError(amount, spendable)
        return spendable
