"""
Utilities package for signal dispatch.

- SignalDayClock: quota day keys in a fixed reference timezone
"""

from signal_dispatch.utils.trading_day import (
    DEFAULT_TIMEZONE,
    SignalDayClock,
)

__all__ = [
    'DEFAULT_TIMEZONE',
    'SignalDayClock',
]
