"""
Tests for signal_dispatch/utils/trading_day.py
"""

from datetime import date, datetime
from unittest.mock import patch

import pytest
import pytz

from signal_dispatch.utils.trading_day import DEFAULT_TIMEZONE, SignalDayClock

UTC = pytz.utc


class TestDayFor:
    """Day keys follow the New York calendar, not UTC."""

    def test_default_timezone(self):
        assert SignalDayClock().timezone == DEFAULT_TIMEZONE == 'America/New_York'

    def test_late_utc_is_previous_ny_day(self):
        # 03:30 UTC on the 17th is 23:30 EDT on the 16th
        dt = UTC.localize(datetime(2026, 3, 17, 3, 30))
        assert SignalDayClock().day_for(dt) == date(2026, 3, 16)

    def test_ny_midnight_boundary(self):
        ny = pytz.timezone('America/New_York')
        clock = SignalDayClock()
        assert clock.day_for(ny.localize(datetime(2026, 3, 16, 23, 59, 59))) == date(2026, 3, 16)
        assert clock.day_for(ny.localize(datetime(2026, 3, 17, 0, 0, 0))) == date(2026, 3, 17)

    def test_winter_offset(self):
        # EST is UTC-5: 04:59 UTC is still the previous day
        clock = SignalDayClock()
        assert clock.day_for(UTC.localize(datetime(2026, 1, 10, 4, 59))) == date(2026, 1, 9)
        assert clock.day_for(UTC.localize(datetime(2026, 1, 10, 5, 0))) == date(2026, 1, 10)

    def test_naive_treated_as_utc(self):
        assert SignalDayClock().day_for(datetime(2026, 3, 17, 3, 30)) == date(2026, 3, 16)

    def test_other_timezone(self):
        dt = UTC.localize(datetime(2026, 3, 16, 23, 30))
        assert SignalDayClock('Asia/Tokyo').day_for(dt) == date(2026, 3, 17)

    def test_unknown_timezone(self):
        with pytest.raises(pytz.UnknownTimeZoneError):
            SignalDayClock('Mars/Olympus')


class TestToday:

    def test_today_uses_now(self):
        clock = SignalDayClock()
        fixed = pytz.timezone('America/New_York').localize(datetime(2026, 7, 4, 9, 0))
        with patch.object(clock, 'now', return_value=fixed):
            assert clock.today() == date(2026, 7, 4)

    def test_utc_clock(self):
        dt = UTC.localize(datetime(2026, 3, 17, 3, 30))
        assert SignalDayClock('UTC').day_for(dt) == date(2026, 3, 17)


class TestRetentionCutoff:

    def test_keeps_yesterday(self):
        today = date(2026, 3, 16)
        assert SignalDayClock().retention_cutoff(1, today) == date(2026, 3, 15)

    def test_clamped_to_one_day(self):
        today = date(2026, 3, 16)
        assert SignalDayClock().retention_cutoff(0, today) == date(2026, 3, 15)
        assert SignalDayClock().retention_cutoff(-3, today) == date(2026, 3, 15)

    def test_longer_window(self):
        assert SignalDayClock().retention_cutoff(7, date(2026, 3, 16)) == date(2026, 3, 9)
