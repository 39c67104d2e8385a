# ledger/funds.py
from decimal import Decimal, InvalidOperation, localcontext
from typing import Dict
import logging

from extensions import db
from models import Bank, BankCashout, Deposit, DepositStatus, PayoutStatus, Withdrawal
from ledger.exceptions import NonPositiveNetError, NotFoundError, UnsupportedBankError, ValidationError
from ledger.store import quantize_amount, transactional, ZERO
from utils import normalize_symbol, parse_amount, validate_address

logger = logging.getLogger(__name__)

# ==========================================================
#                  STATUS TRANSITIONS
# ==========================================================
DEPOSIT_TRANSITIONS = {
    DepositStatus.PENDING.value: {DepositStatus.VERIFIED.value, DepositStatus.REJECTED.value},
    DepositStatus.VERIFIED.value: set(),
    DepositStatus.REJECTED.value: set(),
}

PAYOUT_TRANSITIONS = {
    PayoutStatus.PENDING.value: {PayoutStatus.APPROVED.value, PayoutStatus.REJECTED.value, PayoutStatus.CANCELED.value},
    PayoutStatus.APPROVED.value: {PayoutStatus.COMPLETED.value, PayoutStatus.REJECTED.value},
    PayoutStatus.COMPLETED.value: set(),
    PayoutStatus.REJECTED.value: set(),
    PayoutStatus.CANCELED.value: set(),
}


def _check_transition(table, current, target, label):
    if target not in table:
        raise ValidationError(f"Unknown {label} status: {target!r}")
    if target not in table[current]:
        raise ValidationError(f"Cannot move a {current} {label} to {target}")


def _required_text(value, field_name, max_length=255):
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{field_name} is required")
    if len(value) > max_length:
        raise ValidationError(f"{field_name} is too long")
    return value


class FundsService:
    """Deposits credit the ledger once verified; withdrawals and bank cash-outs debit it while active."""

    def __init__(self, clock, config, balances):
        self.clock = clock
        self.config = config
        self.balances = balances

    # ==========================================================
    #                  DEPOSITS
    # ==========================================================
    def request_deposit(self, user_id, address, symbol, amount, network=None, tx_reference=None,
                        proof_reference=None) -> Deposit:
        address = validate_address(address)
        symbol = normalize_symbol(symbol)
        amount = parse_amount(amount)

        with transactional(f"deposit request for user {user_id}"):
            deposit = Deposit(
                user_id=user_id,
                address=address,
                symbol=symbol,
                network=(network or "").strip().upper() or None,
                amount=quantize_amount(amount),
                tx_reference=(tx_reference or "").strip() or None,
                proof_reference=(proof_reference or "").strip() or None,
                status=DepositStatus.PENDING.value,
            )
            db.session.add(deposit)

        logger.info(f"Deposit {deposit.id} of {amount} {symbol} requested by user {user_id}")
        return deposit

    def _set_deposit_status(self, deposit_id, status) -> Deposit:
        with transactional(f"deposit {deposit_id} -> {status}"):
            deposit = db.session.get(Deposit, deposit_id)
            if deposit is None:
                raise NotFoundError(f"Deposit {deposit_id} not found")
            _check_transition(DEPOSIT_TRANSITIONS, deposit.status, status, "deposit")
            deposit.status = status
            if status == DepositStatus.VERIFIED.value:
                deposit.verified_at = self.clock.utcnow()

        logger.info(f"Deposit {deposit_id} marked {status}")
        return deposit

    def verify_deposit(self, deposit_id) -> Deposit:
        return self._set_deposit_status(deposit_id, DepositStatus.VERIFIED.value)

    def reject_deposit(self, deposit_id) -> Deposit:
        return self._set_deposit_status(deposit_id, DepositStatus.REJECTED.value)

    def list_deposits(self, user_id, limit=200):
        return Deposit.query.filter_by(user_id=user_id).order_by(Deposit.id.desc()).limit(min(limit, 500)).all()

    # ==========================================================
    #                  WITHDRAWALS
    # ==========================================================
    def request_withdrawal(self, user_id, address, symbol, amount, destination) -> Withdrawal:
        address = validate_address(address)
        symbol = normalize_symbol(symbol)
        amount = parse_amount(amount)
        destination = validate_address(destination)

        self.balances.ensure_can_debit(user_id, address, symbol, amount)

        with transactional(f"withdrawal request for user {user_id}"):
            withdrawal = Withdrawal(
                user_id=user_id,
                address=address,
                symbol=symbol,
                amount=quantize_amount(amount),
                destination=destination,
                status=PayoutStatus.PENDING.value,
            )
            db.session.add(withdrawal)

        logger.info(f"Withdrawal {withdrawal.id} of {amount} {symbol} requested by user {user_id}")
        return withdrawal

    def set_withdrawal_status(self, withdrawal_id, status) -> Withdrawal:
        status = (status or "").strip().lower()
        with transactional(f"withdrawal {withdrawal_id} -> {status}"):
            withdrawal = db.session.get(Withdrawal, withdrawal_id)
            if withdrawal is None:
                raise NotFoundError(f"Withdrawal {withdrawal_id} not found")
            _check_transition(PAYOUT_TRANSITIONS, withdrawal.status, status, "withdrawal")
            withdrawal.status = status
            withdrawal.processed_at = self.clock.utcnow()

        logger.info(f"Withdrawal {withdrawal_id} marked {status}")
        return withdrawal

    def list_withdrawals(self, user_id, limit=200):
        return (Withdrawal.query.filter_by(user_id=user_id)
                .order_by(Withdrawal.id.desc()).limit(min(limit, 500)).all())

    # ==========================================================
    #                  BANKS & RATES
    # ==========================================================
    def add_bank(self, code, name, channel=None, active=True) -> Bank:
        """Register a cash-out bank, or update the one with the same code."""
        code = _required_text(code, "Bank code", 32).upper()
        name = _required_text(name, "Bank name", 120)
        channel = (channel or "").strip().lower() or None

        with transactional(f"bank {code}"):
            bank = Bank.query.filter_by(code=code).first()
            if bank is None:
                bank = Bank(code=code)
                db.session.add(bank)
            bank.name = name
            bank.channel = channel
            bank.active = bool(active)

        logger.info(f"Bank {code} ({name}) saved, active={bank.active}")
        return bank

    def list_banks(self, active_only=True):
        query = Bank.query
        if active_only:
            query = query.filter(Bank.active.is_(True))
        return query.order_by(Bank.name.asc()).all()

    def cashout_rate(self) -> Dict:
        return {
            "base": self.config.cashout_symbol,
            "quote": self.config.cashout_currency,
            "rate": self.config.fallback_cashout_rate,
            "fxFeePct": self.config.fx_fee_pct,
            "payoutFee": self.config.payout_fee,
        }

    def quote_cashout(self, amount, rate=None) -> Dict:
        """
        Fiat proceeds of a cash-out: gross = amount x rate, minus the FX fee on gross
        and the flat payout fee. A missing or non-positive rate falls back to the configured one.
        """
        amount = parse_amount(amount)
        try:
            fx_rate = Decimal(str(rate)) if rate not in (None, "") else ZERO
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid FX rate: {rate!r}")
        if not fx_rate.is_finite() or fx_rate <= 0:
            fx_rate = self.config.fallback_cashout_rate

        with localcontext() as ctx:
            ctx.prec = 60
            gross = quantize_amount(amount * fx_rate)
            fx_fee = quantize_amount(gross * self.config.fx_fee_pct)
            net = quantize_amount(gross - fx_fee - self.config.payout_fee)

        if net <= 0:
            raise NonPositiveNetError(
                f"{amount} {self.config.cashout_symbol} does not cover the fees "
                f"({fx_fee} FX + {self.config.payout_fee} payout {self.config.cashout_currency})"
            )
        return {
            "amount": amount,
            "currency": self.config.cashout_currency,
            "rate": fx_rate,
            "fxFeePct": self.config.fx_fee_pct,
            "fxFee": fx_fee,
            "payoutFee": self.config.payout_fee,
            "gross": gross,
            "net": net,
        }

    # ==========================================================
    #                  BANK CASH-OUTS
    # ==========================================================
    def request_bank_cashout(self, user_id, address, symbol, amount, bank_code, account_number,
                             account_name, rate=None, note=None) -> BankCashout:
        address = validate_address(address)
        symbol = normalize_symbol(symbol)
        if symbol != self.config.cashout_symbol:
            raise ValidationError(f"Bank cash-outs are paid from {self.config.cashout_symbol} only")
        bank_code = _required_text(bank_code, "Bank code", 32).upper()
        account_number = _required_text(account_number, "Account number", 64)
        account_name = _required_text(account_name, "Account name", 120)
        quote = self.quote_cashout(amount, rate)
        amount = quote["amount"]

        bank = Bank.query.filter_by(code=bank_code, active=True).first()
        if bank is None:
            raise UnsupportedBankError(f"Bank {bank_code} is not supported")

        self.balances.ensure_can_debit(user_id, address, symbol, amount)

        with transactional(f"bank cash-out request for user {user_id}"):
            cashout = BankCashout(
                user_id=user_id,
                address=address,
                symbol=symbol,
                amount=quantize_amount(amount),
                bank_code=bank.code,
                bank_name=bank.name,
                account_number=account_number,
                account_name=account_name,
                currency=quote["currency"],
                fx_rate=quote["rate"],
                fx_fee_pct=quote["fxFeePct"],
                payout_fee=quote["payoutFee"],
                gross_fiat=quote["gross"],
                net_fiat=quote["net"],
                reference=(note or "").strip()[:255] or None,
                status=PayoutStatus.PENDING.value,
            )
            db.session.add(cashout)

        logger.info(
            f"Bank cash-out {cashout.id} of {amount} {symbol} to {bank.code} requested by user {user_id}: "
            f"net {quote['net']} {quote['currency']} at {quote['rate']}"
        )
        return cashout

    def set_cashout_status(self, cashout_id, status) -> BankCashout:
        status = (status or "").strip().lower()
        with transactional(f"bank cash-out {cashout_id} -> {status}"):
            cashout = db.session.get(BankCashout, cashout_id)
            if cashout is None:
                raise NotFoundError(f"Bank cash-out {cashout_id} not found")
            _check_transition(PAYOUT_TRANSITIONS, cashout.status, status, "bank cash-out")
            cashout.status = status
            cashout.processed_at = self.clock.utcnow()

        logger.info(f"Bank cash-out {cashout_id} marked {status}")
        return cashout

    def list_cashouts(self, user_id, limit=200):
        return (BankCashout.query.filter_by(user_id=user_id)
                .order_by(BankCashout.id.desc()).limit(min(limit, 500)).all())
