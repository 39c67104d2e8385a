# ledger/monitoring.py
from datetime import datetime, timezone
import logging
import statistics
import threading
import time
import traceback
from typing import Any, Dict, List

from extensions import db

logger = logging.getLogger(__name__)


class TaskMonitor:
    """Per-task tick metrics for the background posting processes"""

    HISTORY = 1000

    def __init__(self, name: str):
        self.name = name
        self.runs = 0
        self.failures = 0
        self.skips = 0
        self.last_error = None
        self.last_error_at = None
        self.last_success_at = None
        self.last_result = None
        self.durations: List[float] = []

    def started(self) -> float:
        return time.monotonic()

    def record_success(self, started: float, result=None):
        self.runs += 1
        self.last_result = result
        self.last_success_at = datetime.now(timezone.utc)
        self._record_duration(started)

    def record_failure(self, started: float, error: BaseException):
        self.runs += 1
        self.failures += 1
        self.last_error = "".join(traceback.format_exception_only(type(error), error)).strip()
        self.last_error_at = datetime.now(timezone.utc)
        self._record_duration(started)

    def record_skip(self):
        self.skips += 1

    def _record_duration(self, started: float):
        self.durations.append(time.monotonic() - started)
        if len(self.durations) > self.HISTORY:
            self.durations = self.durations[-self.HISTORY:]

    def health_report(self) -> Dict[str, Any]:
        if not self.runs:
            return {"task": self.name, "status": "no_data", "skips": self.skips}

        success_rate = (self.runs - self.failures) / self.runs
        status = "healthy"
        if success_rate < 0.95:
            status = "degraded"
        if success_rate < 0.90:
            status = "unhealthy"

        return {
            "task": self.name,
            "status": status,
            "runs": self.runs,
            "failures": self.failures,
            "skips": self.skips,
            "success_rate": success_rate,
            "avg_duration_seconds": statistics.mean(self.durations) if self.durations else 0,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
        }


class GuardedTask:
    """
    Base for scheduled components. tick() is the only scheduled entry point:
    it skips when the previous tick is still in flight and never raises.
    """

    name = "task"

    def __init__(self):
        self.monitor = TaskMonitor(self.name)
        self._in_flight = threading.Lock()

    @property
    def running(self) -> bool:
        return self._in_flight.locked()

    def tick(self):
        if not self._in_flight.acquire(blocking=False):
            self.monitor.record_skip()
            logger.debug(f"{self.name}: previous tick still running, skipping")
            return None

        started = self.monitor.started()
        try:
            result = self._tick()
            self.monitor.record_success(started, result)
            return result
        except Exception as e:
            db.session.rollback()
            self.monitor.record_failure(started, e)
            logger.error(f"{self.name}: tick failed: {e}", exc_info=True)
            return None
        finally:
            self._in_flight.release()

    def _tick(self):
        raise NotImplementedError
