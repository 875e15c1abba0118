"""
Base Alerter Interface

Abstract base class for channel alerters (email, Discord, Telegram).

The send() boundary never raises: every failure inside an alerter,
including unexpected exceptions, becomes a failed DeliveryOutcome so one
channel can never abort its siblings, the delivery log or the quota step.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from signal_dispatch.errors import ChannelSendFailed, ConfigurationInvalid
from signal_dispatch.models import (
    ChannelKind,
    DeliveryOutcome,
    NotificationChannel,
    SignalEvent,
    SignalKind,
)

logger = logging.getLogger(__name__)

SIGNAL_LABELS = {
    SignalKind.ENTRY: 'Entry',
    SignalKind.EXIT: 'Exit',
    SignalKind.STOP_LOSS: 'Stop Loss',
    SignalKind.TAKE_PROFIT: 'Take Profit',
}


def format_price(signal: SignalEvent) -> str:
    return f"${signal.price}"


def format_profit(signal: SignalEvent) -> Optional[str]:
    """P&L text for exit-family signals, None otherwise."""
    if not signal.signal_kind.is_exit_family or signal.profit_percentage is None:
        return None
    return f"{signal.profit_percentage:+.2f}%"


class BaseAlerter(ABC):
    """
    Abstract base class for channel alerters.

    Subclasses implement:
    - _deliver(): format and send, raising ChannelSendFailed on failure
    - test_connection(): verify a channel's credentials (not used on the
      dispatch path)

    The base class provides:
    - send(): the exception-proof boundary returning DeliveryOutcome
    - _post_json(): HTTP POST with timeout, backoff and 429 handling
    """

    channel_kind: ChannelKind

    def __init__(
        self,
        name: str,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
        max_retry_after: float = 5.0,
    ):
        """
        Initialize alerter.

        Args:
            name: Unique name for this alerter (e.g., 'discord', 'email')
            timeout: Per-request timeout in seconds
            retry_attempts: Total attempts for transient failures
            retry_delay: Base delay between retries (exponential backoff)
            max_retry_after: Cap on provider-requested 429 waits
        """
        self.name = name
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.max_retry_after = max_retry_after

    def send(self, channel: NotificationChannel, signal: SignalEvent) -> DeliveryOutcome:
        """
        Deliver one signal to one channel.

        Returns:
            DeliveryOutcome (sent or failed with error detail); never raises
        """
        try:
            if getattr(channel, 'kind', None) != self.channel_kind:
                raise ConfigurationInvalid(
                    f"{self.name} alerter cannot deliver to {getattr(channel, 'kind', channel)!r}"
                )
            self._deliver(channel, signal)
        except ChannelSendFailed as e:
            logger.warning(f"{self.name} delivery failed for {signal.signal_id}: {e}")
            return DeliveryOutcome.failed(str(e))
        except Exception as e:
            logger.exception(f"Unexpected {self.name} error for {signal.signal_id}")
            return DeliveryOutcome.failed(f"Unexpected {self.name} error: {e}")

        logger.info(f"{self.name} alert sent: {signal.signal_id}")
        return DeliveryOutcome.sent()

    @abstractmethod
    def _deliver(self, channel: NotificationChannel, signal: SignalEvent) -> None:
        """
        Format and send. Must raise ChannelSendFailed on failure.
        """
        pass

    @abstractmethod
    def test_connection(self, channel: NotificationChannel) -> bool:
        """
        Test that a channel is properly configured and reachable.

        Returns:
            True if connection test passed
        """
        pass

    def format_signal_message(self, signal: SignalEvent) -> str:
        """
        Plain-text rendering of a signal.

        Override for channel-specific formatting.
        """
        lines = [
            f"Trading Signal - {SIGNAL_LABELS[signal.signal_kind]}",
            f"Strategy: {signal.display_name}",
            f"Asset: {signal.asset} | Timeframe: {signal.timeframe or 'N/A'}",
            f"Price: {format_price(signal)}",
        ]
        profit = format_profit(signal)
        if profit:
            lines.append(f"P&L: {profit}")
        lines.append(f"Time: {signal.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}")
        return '\n'.join(lines)

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _retry_after(self, response: requests.Response) -> float:
        """Seconds the provider asked us to wait on a 429."""
        try:
            data = response.json()
            value = data.get('retry_after')
            if value is None:
                value = (data.get('parameters') or {}).get('retry_after')
            if value is not None:
                return float(value)
        except (ValueError, TypeError, AttributeError):
            pass
        try:
            return float(response.headers.get('Retry-After'))
        except (ValueError, TypeError, AttributeError):
            return self.retry_delay

    @staticmethod
    def _response_body(response: requests.Response, limit: int = 500) -> str:
        try:
            return (response.text or '')[:limit]
        except (AttributeError, TypeError):
            return ''

    def _before_request(self, url: str) -> None:
        """Called before every HTTP attempt, retries included. May raise ChannelSendFailed."""

    def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        secret: Optional[str] = None,
    ) -> requests.Response:
        """
        POST JSON with retry on timeouts, connection errors, 429 and 5xx.

        The final response is returned whatever its status so the caller can
        map it to an outcome. Network failures on the last attempt raise
        ChannelSendFailed. Occurrences of secret are redacted from errors.
        """
        last_error: Optional[str] = None

        for attempt in range(self.retry_attempts):
            is_last = attempt == self.retry_attempts - 1
            self._before_request(url)
            try:
                response = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            except requests.exceptions.Timeout:
                last_error = f"{self.name} request timed out after {self.timeout}s"
            except requests.exceptions.RequestException as e:
                detail = str(e)
                if secret:
                    detail = detail.replace(secret, '***')
                last_error = f"{self.name} request error: {detail}"
            else:
                if response.status_code == 429 and not is_last:
                    wait = min(self._retry_after(response), self.max_retry_after)
                    logger.warning(f"{self.name} rate limited, retry after {wait:.1f}s")
                    time.sleep(wait)
                    continue
                if response.status_code >= 500 and not is_last:
                    last_error = f"{self.name} server error {response.status_code}"
                else:
                    return response

            if not is_last:
                logger.warning(
                    f"{last_error} (attempt {attempt + 1}/{self.retry_attempts}), retrying"
                )
                time.sleep(self.retry_delay * (2 ** attempt))

        raise ChannelSendFailed(
            last_error or f"{self.name} send failed after {self.retry_attempts} attempts"
        )
