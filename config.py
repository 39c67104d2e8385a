# ==========================================================================================================
# -------------- Configuration for the yield wallet ledger application -------------------------------------
# ==========================================================================================================
import os
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _csv(value, cast=str):
    return tuple(cast(part.strip()) for part in value.split(",") if part.strip())


def _rate_table(value):
    """Parse "7:0.02,15:0.03" into {7: "0.02", 15: "0.03"}"""
    table = {}
    for pair in _csv(value):
        days, rate = pair.split(":", 1)
        table[int(days)] = rate.strip()
    return table


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")
    TESTING = False

    _database_url = os.getenv("DATABASE_URL")
    if not _database_url:
        _database_url = f"sqlite:///{os.path.join(basedir, 'instance', 'ledger.db')}"

    if _database_url.startswith("postgres://"):
        _database_url = _database_url.replace("postgres://", "postgresql+pg8000://", 1)
    elif _database_url.startswith("postgresql://"):
        _database_url = _database_url.replace("postgresql://", "postgresql+pg8000://", 1)

    SQLALCHEMY_DATABASE_URI = _database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    if _database_url.startswith("postgresql"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }

    # ---------------- business clock ----------------
    BUSINESS_TZ_OFFSET_MINUTES = int(os.getenv("BUSINESS_TZ_OFFSET_MINUTES", "0"))

    # ---------------- yield & commissions ----------------
    REFERRAL_TIER1_RATE = os.getenv("REFERRAL_TIER1_RATE", "0.20")
    REFERRAL_TIER2_RATE = os.getenv("REFERRAL_TIER2_RATE", "0.15")
    CONTRACT_RATE_TABLE = _rate_table(os.getenv("CONTRACT_RATE_TABLE", "7:0.02,15:0.03,30:0.035,60:0.04"))
    DEFAULT_DAILY_RATE = os.getenv("DEFAULT_DAILY_RATE", "0.03")
    CONTRACT_DAYS_ALLOWED = _csv(os.getenv("CONTRACT_DAYS_ALLOWED", "7,15,30,60"), int)
    REFERRAL_SETTLEMENT_SYMBOL = os.getenv("REFERRAL_SETTLEMENT_SYMBOL", "USDT")

    # ---------------- payouts ----------------
    PAYOUT_CUTOFF = os.getenv("PAYOUT_CUTOFF", "00:05")
    PAYOUT_MIN_AMOUNT = os.getenv("PAYOUT_MIN_AMOUNT", "0")

    # ---------------- bank cash-outs ----------------
    CASHOUT_SYMBOL = os.getenv("CASHOUT_SYMBOL", "USDT")
    CASHOUT_CURRENCY = os.getenv("CASHOUT_CURRENCY", "PHP")
    FALLBACK_USDT_PHP = os.getenv("FALLBACK_USDT_PHP", "58")
    FX_FEE_PCT = os.getenv("FX_FEE_PCT", "0.01")
    PAYOUT_FEE_PHP = os.getenv("PAYOUT_FEE_PHP", "25")

    # ---------------- background tasks ----------------
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "False").lower() in ("true", "1", "t")
    ACCRUAL_INTERVAL_SECONDS = float(os.getenv("ACCRUAL_INTERVAL_SECONDS", "60"))
    REALTIME_INTERVAL_SECONDS = float(os.getenv("REALTIME_INTERVAL_SECONDS", "5"))
    PAYOUT_INTERVAL_SECONDS = float(os.getenv("PAYOUT_INTERVAL_SECONDS", "120"))

    # ---------------- wallets ----------------
    WALLET_NETWORKS = _csv(os.getenv("WALLET_NETWORKS", "TRC20,ERC20,BEP20"))

    # ---------------- notifications ----------------
    NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL")
    NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "10"))

    # ---------------- referral links ----------------
    APP_CLIENT_URL = os.getenv("APP_CLIENT_URL")
    REFERRAL_ROUTE = os.getenv("REFERRAL_ROUTE", "/signup")

    LOG_DIR = os.getenv("LOG_DIR", "logs")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SCHEDULER_ENABLED = False
    NOTIFY_WEBHOOK_URL = None
    BUSINESS_TZ_OFFSET_MINUTES = 0
    PAYOUT_MIN_AMOUNT = "0"
