"""
Audit Log

Structured JSON logging of dispatch decisions and ledger health.
Always enabled; it is the operator-facing trail that complements the
per-channel delivery log.

Log Format:
- JSON structured logs for machine parsing
- Human-readable console output
- Rotating file handler for disk management
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from signal_dispatch.models import DispatchResult, SignalEvent

AUDIT_LOGGER_NAME = 'signal_dispatch.audit'


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
        }

        if hasattr(record, 'dispatch'):
            log_entry['dispatch'] = record.dispatch

        if hasattr(record, 'extra'):
            log_entry['extra'] = record.extra

        return json.dumps(log_entry, default=str)


class AuditLogger:
    """
    Dedicated audit logger for dispatches.

    Features:
    - JSON structured logs to file
    - Console output for visibility
    - Rotating file handler (10MB, 5 backups)

    Usage:
        audit = AuditLogger('logs/notifications.log')
        audit.log_dispatch(signal, result)
    """

    def __init__(
        self,
        log_file: Optional[str] = 'logs/notifications.log',
        level: str = 'INFO',
        console_output: bool = True,
    ):
        """
        Initialize audit logger.

        Args:
            log_file: Path to log file (None disables the file handler)
            level: Logging level (DEBUG, INFO, WARNING, ERROR)
            console_output: Whether to also log to console
        """
        self.logger = logging.getLogger(AUDIT_LOGGER_NAME)
        self.logger.setLevel(getattr(logging, level.upper()))

        # Prevent propagation to root logger
        self.logger.propagate = False

        # Close and clear existing handlers
        for handler in list(self.logger.handlers):
            handler.close()
        self.logger.handlers = []

        self.log_file = Path(log_file) if log_file else None
        if self.log_file is not None:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                str(self.log_file),
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(file_handler)

        if console_output:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(logging.Formatter(
                '%(asctime)s | %(levelname)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            self.logger.addHandler(console_handler)

    def _emit(self, level: int, message: str, **attrs: Any) -> None:
        record = self.logger.makeRecord(
            self.logger.name, level, __file__, 0, message, (), None
        )
        for key, value in attrs.items():
            setattr(record, key, value)
        self.logger.handle(record)

    def log_dispatch(self, signal: SignalEvent, result: DispatchResult) -> None:
        """One line per dispatch with its outcome and per-channel results."""
        dispatch = result.to_dict()
        dispatch['user_id'] = signal.user_id
        dispatch['signal_kind'] = signal.signal_kind.value
        dispatch['asset'] = signal.asset

        failed = result.channels_attempted - result.notifications_sent
        level = logging.WARNING if failed and not result.notifications_sent else logging.INFO
        self._emit(
            level,
            f"DISPATCH: {signal.signal_id} -> {result.outcome.value} "
            f"({result.notifications_sent}/{result.channels_attempted} sent)",
            dispatch=dispatch,
        )

    def log_ledger_failure(self, operation: str, strategy_id: str, error: Exception) -> None:
        """Ledger health event (increment lost, fail-open admission, ...)."""
        self._emit(
            logging.ERROR,
            f"LEDGER {operation.upper()} FAILED: {strategy_id} - {error}",
            extra={'operation': operation, 'strategy_id': strategy_id, 'error': str(error)},
        )

    def log_sweep(self, retain_since, removed: int) -> None:
        self._emit(
            logging.INFO,
            f"QUOTA SWEEP: removed {removed} record(s) older than {retain_since}",
            extra={'retain_since': str(retain_since), 'removed': removed},
        )


def setup_logging(level: str = 'INFO') -> None:
    """Configure root logging for the CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
