"""
Signal Dispatch Configuration

Configuration dataclasses for the notification dispatch service.

Configuration Categories:
1. QuotaConfig - Daily cap, reference timezone, retention
2. DeliveryLogConfig - Delivery log store and append retry
3. ChannelConfig - Adapter timeouts, retries and provider credentials
4. DispatchConfig - Outer dispatch timeout and admission mode
5. LoggingConfig - Audit log file and level
6. ApiConfig - Optional HTTP API
7. NotificationConfig - Master configuration
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import logging
import os

import pytz

from signal_dispatch.models import DEFAULT_DAILY_LIMIT

logger = logging.getLogger(__name__)

_env_loaded = False


def load_env_file(env_path: Optional[str] = None, force_reload: bool = False) -> bool:
    """
    Load a .env file into the process environment.

    Platforms that inject variables directly need no file, so a missing
    file is not an error.

    Returns:
        True if a file was loaded
    """
    global _env_loaded

    if _env_loaded and not force_reload:
        return False

    # Import here so library users without a .env never need the import
    from dotenv import load_dotenv

    path = Path(env_path) if env_path else Path.cwd() / '.env'
    _env_loaded = True
    if not path.exists():
        logger.debug(f"No .env file at {path}, using process environment")
        return False

    load_dotenv(path, override=False)
    logger.info(f"Loaded environment from {path}")
    return True


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, 'true' if default else 'false').lower() == 'true'


@dataclass
class QuotaConfig:
    """
    Daily notification cap.

    Attributes:
        default_daily_limit: Limit for strategies without one
        timezone: Reference timezone of the day key (all strategies share it)
        retention_days: Days kept by the sweep; never less than 1 (yesterday)
        ledger_path: SQLite file of the quota ledger
        sweep_enabled: Run the retention sweep on a schedule in `serve`
        sweep_cron: Sweep schedule (minute hour day month day_of_week, reference timezone)
        misfire_grace_time: Seconds a missed sweep may still run late
    """
    default_daily_limit: int = DEFAULT_DAILY_LIMIT
    timezone: str = 'America/New_York'
    retention_days: int = 1
    ledger_path: str = 'data/notifications/quota.db'
    sweep_enabled: bool = True
    sweep_cron: str = '5 0 * * *'  # 00:05 ET daily
    misfire_grace_time: int = 300  # 5 minutes


@dataclass
class DeliveryLogConfig:
    """
    Delivery log store.

    Attributes:
        log_path: SQLite file of the delivery log
        max_append_attempts: Append retries per entry (the send is never retried)
        retry_delay_seconds: Pause between append attempts
    """
    log_path: str = 'data/notifications/delivery_log.db'
    max_append_attempts: int = 3
    retry_delay_seconds: float = 0.2


@dataclass
class ChannelConfig:
    """
    Channel adapter settings.

    Attributes:
        channel_timeout_seconds: Per-request timeout for every adapter
        retry_attempts: Attempts on transient failures (timeouts, 429, 5xx)
        retry_delay_seconds: Base backoff delay
        discord_username: Bot name shown on Discord messages
        email_api_url: Resend-compatible send endpoint
        email_api_key: Provider API key
        email_from_address: Sender address
    """
    channel_timeout_seconds: float = 10.0
    retry_attempts: int = 2
    retry_delay_seconds: float = 1.0

    discord_username: str = 'Trading Signal Bot'

    email_api_url: str = 'https://api.resend.com/emails'
    email_api_key: str = ''
    email_from_address: str = 'Trading Signals <signals@example.com>'


@dataclass
class DispatchConfig:
    """
    Dispatch behavior.

    Attributes:
        dispatch_timeout_seconds: Outer bound on one fan-out
        strict_admission: Reserve quota before sending (closes the
            check-then-increment race at the cost of counting a dispatch
            whose channels all fail)
    """
    dispatch_timeout_seconds: float = 30.0
    strict_admission: bool = False


@dataclass
class LoggingConfig:
    """Audit log settings."""
    log_file: str = 'logs/notifications.log'
    log_level: str = 'INFO'
    console_output: bool = True


@dataclass
class ApiConfig:
    """
    REST API server configuration.

    Attributes:
        enabled: Enable API server
        host: Host to bind to
        port: Port to bind to
    """
    enabled: bool = False  # Off by default
    host: str = '0.0.0.0'  # Listen on all interfaces
    port: int = 8082


@dataclass
class NotificationConfig:
    """
    Master configuration for the dispatch service.

    Attributes:
        quota: Daily cap configuration
        delivery_log: Delivery log configuration
        channels: Adapter configuration
        dispatch: Dispatch timeout and admission mode
        logging: Audit log configuration
        api: REST API configuration
    """
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    delivery_log: DeliveryLogConfig = field(default_factory=DeliveryLogConfig)
    channels: ChannelConfig = field(default_factory=ChannelConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @classmethod
    def from_env(cls) -> 'NotificationConfig':
        """
        Create configuration from environment variables.

        Environment variables:
            NOTIFY_DEFAULT_DAILY_LIMIT: Default daily notification cap
            NOTIFY_TIMEZONE: Reference timezone for the day key
            NOTIFY_RETENTION_DAYS: Days of quota records kept by the sweep
            NOTIFY_LEDGER_PATH: Quota ledger SQLite file
            NOTIFY_SWEEP_ENABLED: Schedule the retention sweep (true/false)
            NOTIFY_SWEEP_CRON: Sweep cron expression
            NOTIFY_DELIVERY_LOG_PATH: Delivery log SQLite file
            NOTIFY_CHANNEL_TIMEOUT: Per-adapter request timeout (seconds)
            NOTIFY_RETRY_ATTEMPTS: Adapter attempts on transient failures
            NOTIFY_DISPATCH_TIMEOUT: Outer dispatch timeout (seconds)
            NOTIFY_STRICT_ADMISSION: Reserve quota before sending (true/false)
            NOTIFY_DISCORD_USERNAME: Discord bot display name
            NOTIFY_EMAIL_API_URL: Email provider endpoint
            NOTIFY_EMAIL_FROM: Email sender address
            RESEND_API_KEY: Email provider API key
            NOTIFY_LOG_FILE: Audit log file
            NOTIFY_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
            NOTIFY_API_ENABLED: Enable HTTP API (true/false)
            NOTIFY_API_HOST / NOTIFY_API_PORT: HTTP API bind address
        """
        quota_config = QuotaConfig()
        if limit := os.environ.get('NOTIFY_DEFAULT_DAILY_LIMIT'):
            quota_config.default_daily_limit = int(limit)
        if tz := os.environ.get('NOTIFY_TIMEZONE'):
            quota_config.timezone = tz
        if retention := os.environ.get('NOTIFY_RETENTION_DAYS'):
            quota_config.retention_days = int(retention)
        if ledger_path := os.environ.get('NOTIFY_LEDGER_PATH'):
            quota_config.ledger_path = ledger_path
        quota_config.sweep_enabled = _env_bool('NOTIFY_SWEEP_ENABLED', True)
        if sweep_cron := os.environ.get('NOTIFY_SWEEP_CRON'):
            quota_config.sweep_cron = sweep_cron

        log_config = DeliveryLogConfig()
        if log_path := os.environ.get('NOTIFY_DELIVERY_LOG_PATH'):
            log_config.log_path = log_path

        channel_config = ChannelConfig()
        if timeout := os.environ.get('NOTIFY_CHANNEL_TIMEOUT'):
            channel_config.channel_timeout_seconds = float(timeout)
        if attempts := os.environ.get('NOTIFY_RETRY_ATTEMPTS'):
            channel_config.retry_attempts = int(attempts)
        if username := os.environ.get('NOTIFY_DISCORD_USERNAME'):
            channel_config.discord_username = username
        if api_url := os.environ.get('NOTIFY_EMAIL_API_URL'):
            channel_config.email_api_url = api_url
        if from_address := os.environ.get('NOTIFY_EMAIL_FROM'):
            channel_config.email_from_address = from_address
        channel_config.email_api_key = os.environ.get('RESEND_API_KEY', '')

        dispatch_config = DispatchConfig()
        if dispatch_timeout := os.environ.get('NOTIFY_DISPATCH_TIMEOUT'):
            dispatch_config.dispatch_timeout_seconds = float(dispatch_timeout)
        dispatch_config.strict_admission = _env_bool('NOTIFY_STRICT_ADMISSION', False)

        logging_config = LoggingConfig()
        if log_file := os.environ.get('NOTIFY_LOG_FILE'):
            logging_config.log_file = log_file
        logging_config.log_level = os.environ.get('NOTIFY_LOG_LEVEL', 'INFO')

        api_config = ApiConfig()
        api_config.enabled = _env_bool('NOTIFY_API_ENABLED', False)
        if api_host := os.environ.get('NOTIFY_API_HOST'):
            api_config.host = api_host
        if api_port := os.environ.get('NOTIFY_API_PORT'):
            api_config.port = int(api_port)

        return cls(
            quota=quota_config,
            delivery_log=log_config,
            channels=channel_config,
            dispatch=dispatch_config,
            logging=logging_config,
            api=api_config,
        )

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of issues.

        Returns:
            List of validation error messages (empty if valid)
        """
        issues = []

        if self.quota.default_daily_limit <= 0:
            issues.append('Default daily limit must be positive')
        if self.quota.retention_days < 1:
            issues.append('Retention must keep at least 1 day (yesterday)')

        try:
            pytz.timezone(self.quota.timezone)
        except pytz.UnknownTimeZoneError:
            issues.append(f'Unknown timezone: {self.quota.timezone}')
        if self.quota.sweep_enabled and len(self.quota.sweep_cron.split()) != 5:
            issues.append(f'Invalid sweep cron expression: {self.quota.sweep_cron}')

        if self.delivery_log.max_append_attempts < 1:
            issues.append('Delivery log max_append_attempts must be at least 1')

        if self.channels.channel_timeout_seconds <= 0:
            issues.append('Channel timeout must be positive')
        if self.channels.retry_attempts < 1:
            issues.append('Channel retry_attempts must be at least 1')
        if not self.channels.email_api_key:
            issues.append('RESEND_API_KEY not set (email deliveries will fail)')

        if self.dispatch.dispatch_timeout_seconds < self.channels.channel_timeout_seconds:
            issues.append('Dispatch timeout should not be shorter than the channel timeout')

        if self.logging.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            issues.append(f'Invalid log level: {self.logging.log_level}')

        if not (0 < self.api.port < 65536):
            issues.append(f'Invalid API port: {self.api.port}')

        return issues
