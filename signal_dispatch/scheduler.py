"""
Quota Sweep Scheduler

APScheduler-based background job that removes expired quota records
once a day, so the ledger only ever holds today and the retention window.

Runs in the reference timezone of the day key (America/New_York by
default), shortly after midnight there.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED, JobEvent
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
import pytz

from signal_dispatch.config import QuotaConfig

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = 'quota_sweep'


class SweepScheduler:
    """
    Schedules the quota retention sweep.

    Usage:
        scheduler = SweepScheduler(config.quota)
        scheduler.add_sweep_job(coordinator.sweep)
        scheduler.start()
        # ... later ...
        scheduler.shutdown()
    """

    def __init__(self, config: Optional[QuotaConfig] = None):
        self.config = config or QuotaConfig()
        self.timezone = pytz.timezone(self.config.timezone)

        self._scheduler = BackgroundScheduler(
            timezone=self.timezone,
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,
                'misfire_grace_time': self.config.misfire_grace_time,
            }
        )
        self._job_id: Optional[str] = None
        self._stats: Dict[str, Any] = {
            'run_count': 0,
            'error_count': 0,
            'missed_count': 0,
            'last_run': None,
            'last_status': 'pending',
            'last_error': None,
        }
        self._is_running = False

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

    def _on_job_executed(self, event: JobEvent) -> None:
        self._stats['last_run'] = datetime.now(self.timezone)
        self._stats['run_count'] += 1
        self._stats['last_status'] = 'success'
        logger.info(f"Sweep job executed: {event.job_id} (removed {event.retval})")

    def _on_job_error(self, event: JobEvent) -> None:
        self._stats['last_run'] = datetime.now(self.timezone)
        self._stats['error_count'] += 1
        self._stats['last_status'] = 'error'
        self._stats['last_error'] = str(event.exception)
        logger.error(f"Sweep job error: {event.job_id} - {event.exception}")

    def _on_job_missed(self, event: JobEvent) -> None:
        self._stats['missed_count'] += 1
        self._stats['last_status'] = 'missed'
        logger.warning(f"Sweep job missed: {event.job_id}")

    @staticmethod
    def _parse_cron(cron_expr: str) -> Dict[str, str]:
        """
        Parse a cron expression into CronTrigger kwargs.

        Format: minute hour day month day_of_week
        """
        parts = cron_expr.split()
        if len(parts) != 5:
            raise ValueError(f"Invalid cron expression: {cron_expr}")

        return {
            'minute': parts[0],
            'hour': parts[1],
            'day': parts[2],
            'month': parts[3],
            'day_of_week': parts[4],
        }

    def add_sweep_job(self, callback: Callable[[], int], job_id: str = SWEEP_JOB_ID) -> Optional[str]:
        """
        Add the daily sweep job.

        Args:
            callback: Sweep function returning the number of removed records
            job_id: Unique job identifier

        Returns:
            Job ID if added, None if disabled
        """
        if not self.config.sweep_enabled:
            logger.info("Scheduled quota sweep disabled in config")
            return None

        job = self._scheduler.add_job(
            callback,
            trigger=CronTrigger(**self._parse_cron(self.config.sweep_cron), timezone=self.timezone),
            id=job_id,
            name='Quota Retention Sweep',
            replace_existing=True,
        )
        self._job_id = job.id
        logger.info(f"Added sweep job: {job.id} ({self.config.sweep_cron} {self.config.timezone})")
        return job.id

    def start(self) -> None:
        if self._is_running:
            logger.warning("Sweep scheduler already running")
            return
        self._scheduler.start()
        self._is_running = True
        logger.info("Sweep scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        if not self._is_running:
            return
        self._scheduler.shutdown(wait=wait)
        self._is_running = False
        logger.info("Sweep scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def get_status(self) -> Dict[str, Any]:
        """Scheduler state and sweep job statistics."""
        next_run = None
        if self._job_id:
            job = self._scheduler.get_job(self._job_id)
            if job and job.next_run_time:
                next_run = job.next_run_time.isoformat()

        return {
            'running': self._is_running,
            'job_id': self._job_id,
            'next_run': next_run,
            **self._stats,
        }
