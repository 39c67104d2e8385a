# ledger/engine.py
from flask import current_app

from ledger.accounts import AccountService
from ledger.accrual import DailyAccrualEngine
from ledger.balance import BalanceAggregator
from ledger.clock import BusinessClock
from ledger.commission import CommissionPropagator
from ledger.config import LedgerConfig
from ledger.funds import FundsService
from ledger.notifications import Notifier
from ledger.payout import ReferralPayoutScheduler
from ledger.realtime import RealtimeProrationPoster
from ledger.referrals import ReferralService
from ledger.subscriptions import SubscriptionService


class Ledger:
    """Component container stored on app.extensions["ledger"]."""

    def __init__(self, config: LedgerConfig, clock, notifier):
        self.config = config
        self.clock = clock
        self.notifier = notifier

        self.commissions = CommissionPropagator(config)
        self.accrual = DailyAccrualEngine(clock, self.commissions)
        self.realtime = RealtimeProrationPoster(clock, self.commissions)
        self.payout = ReferralPayoutScheduler(clock, config)
        self.referrals = ReferralService()
        self.accounts = AccountService(config, self.referrals, notifier)
        self.balances = BalanceAggregator(config, self.accrual, self.realtime,
                                          self.accounts.resolve_default_address)
        self.subscriptions = SubscriptionService(clock, config, self.balances)
        self.funds = FundsService(clock, config, self.balances)
        self.periodic_tasks = []

    @property
    def tasks(self):
        return [self.accrual, self.realtime, self.payout]

    def health_report(self):
        return {task.name: task.monitor.health_report() for task in self.tasks}


def init_ledger(app, clock=None):
    config = LedgerConfig(app.config)
    clock = clock or BusinessClock(config.tz_offset_minutes)
    notifier = Notifier(app.config.get("NOTIFY_WEBHOOK_URL"), app.config.get("NOTIFY_TIMEOUT_SECONDS", 10))
    ledger = Ledger(config, clock, notifier)
    app.extensions["ledger"] = ledger
    return ledger


def get_ledger() -> Ledger:
    return current_app.extensions["ledger"]


def run_daily_accrual(user_id=None):
    return get_ledger().accrual.run(user_id=user_id)


def run_realtime_poster(user_id=None):
    return get_ledger().realtime.run(user_id=user_id)


def run_referral_payout(day=None):
    return get_ledger().payout.run(day)
