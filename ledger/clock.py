# ledger/clock.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import NamedTuple, Callable, Optional

SECONDS_PER_DAY = Decimal(86400)


class BusinessNow(NamedTuple):
    moment: datetime            # aware UTC instant the reading was taken at
    business_date: object       # datetime.date in the business timezone
    fraction_of_day_elapsed: Decimal
    time_of_day: object         # datetime.time in the business timezone

    @property
    def yesterday(self):
        return self.business_date - timedelta(days=1)


class BusinessClock:
    """Converts UTC to the configured business timezone (fixed offset)."""

    def __init__(self, offset_minutes: int = 0, utcnow: Optional[Callable[[], datetime]] = None):
        self.tz = timezone(timedelta(minutes=offset_minutes))
        self._utcnow = utcnow or (lambda: datetime.now(timezone.utc))

    def utcnow(self) -> datetime:
        moment = self._utcnow()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment

    def now(self) -> BusinessNow:
        moment = self.utcnow()
        local = moment.astimezone(self.tz)
        midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
        elapsed = Decimal(str((local - midnight).total_seconds()))
        fraction = min(max(elapsed / SECONDS_PER_DAY, Decimal(0)), Decimal(1))
        return BusinessNow(
            moment=moment,
            business_date=local.date(),
            fraction_of_day_elapsed=fraction,
            time_of_day=local.time(),
        )

    def today(self):
        return self.now().business_date


class FrozenClock(BusinessClock):
    """Clock pinned to a settable instant, for tests and replays."""

    def __init__(self, moment: datetime, offset_minutes: int = 0):
        self.moment = moment
        super().__init__(offset_minutes, utcnow=lambda: self.moment)

    def set(self, moment: datetime):
        self.moment = moment

    def advance(self, **delta):
        self.moment = self.moment + timedelta(**delta)
        return self.moment
