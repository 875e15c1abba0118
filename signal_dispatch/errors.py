"""
Notification Errors

Exception taxonomy for the dispatch subsystem.

Only InvalidSignalEvent ever escapes on_signal_generated. Everything else is
contained where it happens:
- ChannelSendFailed / ConfigurationInvalid: converted to a failed outcome
  at the alerter boundary
- LedgerUnavailable: admission fails open, increment failures are logged
- LogAppendFailed: logged after bounded retry

Quota exhaustion is a normal outcome (DispatchOutcome.QUOTA_EXHAUSTED),
not an exception.
"""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification dispatch errors."""
    pass


class InvalidSignalEvent(NotificationError, ValueError):
    """Signal event is missing or malformed."""
    pass


class ChannelSendFailed(NotificationError):
    """A single channel failed to deliver."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationInvalid(ChannelSendFailed):
    """Channel configuration is unusable (e.g. malformed webhook URL)."""
    pass


class LedgerUnavailable(NotificationError):
    """Quota ledger backend could not be reached."""
    pass


class LogAppendFailed(NotificationError):
    """Delivery log append failed after all retries."""
    pass
