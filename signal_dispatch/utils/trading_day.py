"""
Signal day boundaries for quota accounting.

All strategies share one reset cadence: the quota day key is the calendar
date in a fixed reference timezone (America/New_York by default), never the
caller's local time. The dispatch coordinator computes the key once per
dispatch so admission and increment always agree.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/New_York'


@dataclass
class SignalDayClock:
    """
    Maps instants to quota day keys in a reference timezone.

    Args:
        timezone: Reference timezone name (default: America/New_York)

    Example:
        clock = SignalDayClock()
        today = clock.today()
        cutoff = clock.retention_cutoff(retention_days=1)
    """

    timezone: str = DEFAULT_TIMEZONE
    _tz: pytz.BaseTzInfo = field(init=False, repr=False)

    def __post_init__(self):
        self._tz = pytz.timezone(self.timezone)

    def now(self) -> datetime:
        return datetime.now(self._tz)

    def day_for(self, dt: Optional[datetime] = None) -> date:
        """
        Quota day containing the given instant.

        Naive datetimes are interpreted as UTC.
        """
        if dt is None:
            return self.now().date()
        if dt.tzinfo is None:
            dt = pytz.utc.localize(dt)
        return dt.astimezone(self._tz).date()

    def today(self) -> date:
        return self.day_for()

    def retention_cutoff(self, retention_days: int = 1, today: Optional[date] = None) -> date:
        """
        Oldest day to keep when sweeping.

        retention_days is clamped to at least 1 so yesterday always survives.
        """
        if today is None:
            today = self.today()
        return today - timedelta(days=max(1, retention_days))

