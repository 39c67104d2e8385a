# ledger/scheduler.py
import logging

import gevent

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs a component's tick() every `interval` seconds in its own greenlet, inside an app context."""

    def __init__(self, app, task, interval):
        self.app = app
        self.task = task
        self.interval = float(interval)
        self.greenlet = None

    @property
    def name(self):
        return self.task.name

    def _loop(self):
        logger.info(f"{self.name}: scheduled every {self.interval}s")
        while True:
            with self.app.app_context():
                # tick() records its own failures and never raises
                self.task.tick()
            gevent.sleep(self.interval)

    def start(self):
        if self.greenlet is None or self.greenlet.dead:
            self.greenlet = gevent.spawn(self._loop)
        return self.greenlet

    def stop(self):
        if self.greenlet is not None and not self.greenlet.dead:
            self.greenlet.kill(block=False)
            logger.info(f"{self.name}: stopped")
        self.greenlet = None


def build_periodic_tasks(app, ledger):
    config = app.config
    return [
        PeriodicTask(app, ledger.accrual, config.get("ACCRUAL_INTERVAL_SECONDS", 60)),
        PeriodicTask(app, ledger.realtime, config.get("REALTIME_INTERVAL_SECONDS", 5)),
        PeriodicTask(app, ledger.payout, config.get("PAYOUT_INTERVAL_SECONDS", 120)),
    ]


def start_background_tasks(app):
    """Spawn the posting loops once per process."""
    ledger = app.extensions["ledger"]
    if ledger.periodic_tasks:
        return ledger.periodic_tasks

    ledger.periodic_tasks = build_periodic_tasks(app, ledger)
    for periodic in ledger.periodic_tasks:
        periodic.start()
    logger.info(f"Started {len(ledger.periodic_tasks)} background task(s)")
    return ledger.periodic_tasks


def stop_background_tasks(app):
    ledger = app.extensions["ledger"]
    for periodic in ledger.periodic_tasks:
        periodic.stop()
    ledger.periodic_tasks = []
