"""
Tests for signal_dispatch/scheduler.py

Covers:
- SweepScheduler initialization
- Cron expression parsing
- Sweep job registration (enabled and disabled)
- Start/shutdown and event handlers
"""

import pytest
from unittest.mock import MagicMock, Mock, patch

from signal_dispatch.config import QuotaConfig
from signal_dispatch.scheduler import SWEEP_JOB_ID, SweepScheduler


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_scheduler():
    """Create a mocked BackgroundScheduler."""
    with patch('signal_dispatch.scheduler.BackgroundScheduler') as mock_bg:
        scheduler_instance = MagicMock()
        mock_bg.return_value = scheduler_instance
        yield scheduler_instance


@pytest.fixture
def scheduler(mock_scheduler):
    return SweepScheduler()


# =============================================================================
# Tests
# =============================================================================

class TestInit:

    def test_job_defaults(self):
        with patch('signal_dispatch.scheduler.BackgroundScheduler') as mock_bg:
            SweepScheduler(QuotaConfig(misfire_grace_time=60))

        job_defaults = mock_bg.call_args.kwargs['job_defaults']
        assert job_defaults['coalesce'] is True
        assert job_defaults['max_instances'] == 1
        assert job_defaults['misfire_grace_time'] == 60
        assert str(mock_bg.call_args.kwargs['timezone']) == 'America/New_York'

    def test_listeners_registered(self, mock_scheduler, scheduler):
        assert mock_scheduler.add_listener.call_count == 3


class TestParseCron:

    def test_parse(self):
        assert SweepScheduler._parse_cron('5 0 * * *') == {
            'minute': '5', 'hour': '0', 'day': '*', 'month': '*', 'day_of_week': '*',
        }

    def test_invalid(self):
        with pytest.raises(ValueError):
            SweepScheduler._parse_cron('5 0 *')


class TestSweepJob:

    def test_add_job(self, mock_scheduler, scheduler):
        mock_scheduler.add_job.return_value = Mock(id=SWEEP_JOB_ID)
        callback = Mock()

        assert scheduler.add_sweep_job(callback) == SWEEP_JOB_ID
        assert mock_scheduler.add_job.call_args.args[0] is callback
        assert mock_scheduler.add_job.call_args.kwargs['replace_existing'] is True

    def test_disabled(self, mock_scheduler):
        scheduler = SweepScheduler(QuotaConfig(sweep_enabled=False))
        assert scheduler.add_sweep_job(Mock()) is None
        mock_scheduler.add_job.assert_not_called()

    def test_real_trigger_fires_after_midnight_et(self):
        """Uses a real (unstarted) BackgroundScheduler to compute the next run."""
        scheduler = SweepScheduler()
        scheduler.add_sweep_job(Mock())

        trigger = scheduler._scheduler.get_job(SWEEP_JOB_ID).trigger
        fields = {f.name: str(f) for f in trigger.fields}
        assert fields['hour'] == '0'
        assert fields['minute'] == '5'
        assert str(trigger.timezone) == 'America/New_York'


class TestLifecycle:

    def test_start_and_shutdown(self, mock_scheduler, scheduler):
        scheduler.start()
        scheduler.start()
        assert mock_scheduler.start.call_count == 1
        assert scheduler.is_running is True

        scheduler.shutdown(wait=False)
        mock_scheduler.shutdown.assert_called_once_with(wait=False)
        assert scheduler.is_running is False

    def test_shutdown_when_not_running(self, mock_scheduler, scheduler):
        scheduler.shutdown()
        mock_scheduler.shutdown.assert_not_called()


class TestEvents:

    def test_executed(self, scheduler):
        scheduler._on_job_executed(Mock(job_id=SWEEP_JOB_ID, retval=3))
        status = scheduler.get_status()
        assert status['run_count'] == 1
        assert status['last_status'] == 'success'

    def test_error(self, scheduler):
        scheduler._on_job_error(Mock(job_id=SWEEP_JOB_ID, exception=RuntimeError('locked')))
        status = scheduler.get_status()
        assert status['error_count'] == 1
        assert status['last_error'] == 'locked'

    def test_missed(self, scheduler):
        scheduler._on_job_missed(Mock(job_id=SWEEP_JOB_ID))
        assert scheduler.get_status()['missed_count'] == 1
