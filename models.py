# models.py - Flask-SQLAlchemy models for the custodial yield ledger
from datetime import timedelta
from decimal import Decimal, ROUND_DOWN, localcontext
import enum
from sqlalchemy import Numeric, String, TypeDecorator, UniqueConstraint, Index, text
from extensions import db
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash


# Fixed point money: 18 fractional digits
AMOUNT_QUANT = Decimal("0.000000000000000001")
ZERO = Decimal("0")


class FixedPoint(TypeDecorator):
    """
    NUMERIC(36, 18) where the backend has it. SQLite has no decimal storage, so there the
    value is kept as zero-padded text: equality and ordering on the column still match the
    numbers. Amounts are never negative.
    """
    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(self.impl.precision, self.impl.scale))

    def process_bind_param(self, value, dialect):
        if value is None or dialect.name != "sqlite":
            return value
        with localcontext() as ctx:
            ctx.prec = 60
            value = Decimal(str(value)).quantize(AMOUNT_QUANT, rounding=ROUND_DOWN)
        if value < 0:
            raise ValueError(f"Negative amount cannot be stored: {value}")
        return f"{value:037.18f}"

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


Money = FixedPoint(36, 18)

# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class SubscriptionStatus(enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELED = "canceled"
    COMPLETED = "completed"


class DepositStatus(enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class PayoutStatus(enum.Enum):
    """Lifecycle shared by withdrawals and bank cash-outs."""
    PENDING = "pending"
    APPROVED = "approved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELED = "canceled"


class RewardStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"


# Debits that still hold funds out of the spendable balance
ACTIVE_PAYOUT_STATUSES = (
    PayoutStatus.PENDING.value,
    PayoutStatus.APPROVED.value,
    PayoutStatus.COMPLETED.value,
)


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime(timezone=True), default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=db.func.now(),
                           onupdate=db.func.now())


# ===========================================================
# USERS & WALLET ADDRESSES
# ===========================================================

class User(db.Model, UserMixin, BaseMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    identifier = db.Column(db.String(160), unique=True, nullable=False)  # email or phone
    password_hash = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    addresses = db.relationship('WalletAddress', back_populates='user', cascade="all,delete-orphan")

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "identifier": self.identifier,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class WalletAddress(db.Model, BaseMixin):
    """Bookkeeping label for a user's deposit address on one network."""
    __tablename__ = 'wallet_addresses'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    network = db.Column(db.String(16), nullable=False)
    address = db.Column(db.String(128), nullable=False, unique=True)
    is_default = db.Column(db.Boolean, default=False, nullable=False)

    user = db.relationship('User', back_populates='addresses')

    def to_dict(self):
        return {
            "id": self.id,
            "network": self.network,
            "address": self.address,
            "isDefault": self.is_default,
        }


# ===========================================================
# DEPOSITS, WITHDRAWALS & BANK CASH-OUTS
# ===========================================================

class Deposit(db.Model, BaseMixin):
    __tablename__ = 'deposits'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    address = db.Column(db.String(128), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)
    network = db.Column(db.String(16), nullable=True)
    amount = db.Column(Money, nullable=False)
    tx_reference = db.Column(db.String(128), nullable=True)
    proof_reference = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=DepositStatus.PENDING.value)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_deposit_balance', 'user_id', 'address', 'symbol', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "address": self.address,
            "symbol": self.symbol,
            "network": self.network,
            "amount": str(self.amount),
            "txReference": self.tx_reference,
            "status": self.status,
            "verifiedAt": self.verified_at.isoformat() if self.verified_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Withdrawal(db.Model, BaseMixin):
    __tablename__ = 'withdrawals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    address = db.Column(db.String(128), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)
    amount = db.Column(Money, nullable=False)
    destination = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PayoutStatus.PENDING.value)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_withdrawal_balance', 'user_id', 'address', 'symbol', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "address": self.address,
            "symbol": self.symbol,
            "amount": str(self.amount),
            "destination": self.destination,
            "status": self.status,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Bank(db.Model, BaseMixin):
    """Supported cash-out destination; only active banks are offered."""
    __tablename__ = 'banks'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(120), nullable=False)
    channel = db.Column(db.String(32), nullable=True)  # instapay / pesonet
    active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            "code": self.code,
            "name": self.name,
            "channel": self.channel,
            "active": self.active,
        }


class BankCashout(db.Model, BaseMixin):
    """Debit of a crypto balance paid out in fiat; the FX quote is frozen on the row."""
    __tablename__ = 'bank_cashouts'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    address = db.Column(db.String(128), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)
    amount = db.Column(Money, nullable=False)
    bank_code = db.Column(db.String(32), nullable=False)
    bank_name = db.Column(db.String(120), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)
    account_name = db.Column(db.String(120), nullable=False)
    currency = db.Column(db.String(8), nullable=False, default="PHP")
    fx_rate = db.Column(Money, nullable=False)
    fx_fee_pct = db.Column(db.Numeric(10, 6), nullable=False)
    payout_fee = db.Column(Money, nullable=False)
    gross_fiat = db.Column(Money, nullable=False)
    net_fiat = db.Column(Money, nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=PayoutStatus.PENDING.value)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_cashout_balance', 'user_id', 'address', 'symbol', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "address": self.address,
            "symbol": self.symbol,
            "amount": str(self.amount),
            "bankCode": self.bank_code,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "accountName": self.account_name,
            "currency": self.currency,
            "fxRate": str(self.fx_rate),
            "fxFeePct": str(self.fx_fee_pct),
            "payoutFee": str(self.payout_fee),
            "grossFiat": str(self.gross_fiat),
            "netFiat": str(self.net_fiat),
            "reference": self.reference,
            "status": self.status,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# ===========================================================
# SUBSCRIPTIONS & PROFIT LEDGER
# ===========================================================

class Subscription(db.Model, BaseMixin):
    """One principal lock per (user, address, symbol)."""
    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    address = db.Column(db.String(128), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)
    principal = db.Column(Money, nullable=False)
    days = db.Column(db.Integer, nullable=False)
    daily_rate = db.Column(db.Numeric(10, 6), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    last_credited = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)

    __table_args__ = (
        UniqueConstraint('user_id', 'address', 'symbol', name='uq_subscription_user_address_symbol'),
        Index('idx_subscription_status_start', 'status', 'start_date'),
    )

    @property
    def daily_credit(self) -> Decimal:
        return Decimal(str(self.principal)) * Decimal(str(self.daily_rate))

    @staticmethod
    def end_for(start_date, days):
        return start_date + timedelta(days=days - 1)

    def to_dict(self):
        return {
            "id": self.id,
            "address": self.address,
            "symbol": self.symbol,
            "principal": str(self.principal),
            "days": self.days,
            "dailyRate": str(self.daily_rate),
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "lastCredited": self.last_credited.isoformat() if self.last_credited else None,
            "status": self.status,
        }


class ProfitLedger(db.Model):
    """Daily yield credit; the row key is the idempotency key for both posters."""
    __tablename__ = 'profit_ledger'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    address = db.Column(db.String(128), nullable=False)
    symbol = db.Column(db.String(16), nullable=False)
    day = db.Column(db.Date, nullable=False)
    amount = db.Column(Money, nullable=False, default=ZERO, server_default=text("0"))
    created_at = db.Column(db.DateTime(timezone=True), default=db.func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'address', 'symbol', 'day', name='uq_profit_day'),
        Index('idx_profit_user_day', 'user_id', 'day'),
    )


# ===========================================================
# REFERRALS
# ===========================================================

class ReferralCode(db.Model, BaseMixin):
    __tablename__ = 'referral_codes'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    clicks = db.Column(db.Integer, nullable=False, default=0)


class ReferralRelation(db.Model, BaseMixin):
    """referrer -> referee; a referee has at most one referrer."""
    __tablename__ = 'referral_relations'

    id = db.Column(db.Integer, primary_key=True)
    referrer_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    referee_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True)

    referrer = db.relationship('User', foreign_keys=[referrer_id])
    referee = db.relationship('User', foreign_keys=[referee_id])


class ReferralReward(db.Model):
    """Commission row; pending rows are mutable, paid rows are history."""
    __tablename__ = 'referral_rewards'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)  # earner
    source_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    tier = db.Column(db.SmallInteger, nullable=False)
    source_day = db.Column(db.Date, nullable=False)
    amount = db.Column(Money, nullable=False, default=ZERO, server_default=text("0"))
    status = db.Column(db.String(10), nullable=False, default=RewardStatus.PENDING.value)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=db.func.now())

    __table_args__ = (
        UniqueConstraint('user_id', 'source_user_id', 'source_day', 'tier', name='uq_comm_day'),
        Index('idx_rewards_day_status', 'source_day', 'status'),
        db.CheckConstraint('tier IN (1, 2)', name='chk_reward_tier'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.source_user_id,
            "tier": self.tier,
            "sourceDay": self.source_day.isoformat(),
            "amount": str(self.amount),
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
        }
