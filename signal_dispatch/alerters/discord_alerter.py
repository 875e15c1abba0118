"""
Discord Alerter

Discord webhook alerter with rich embed formatting for trading signals.
Handles Discord 429 rate limiting (retry_after) and retries transient
failures with exponential backoff.

Discord Embed Format:
- Color-coded by signal kind (green=entry, red=exit, yellow=stop/target)
- Structured fields for strategy, asset, price, timeframe
- P&L field on exit-family signals
"""

import logging
import re
import threading
import time
from typing import Any, Dict, List, Optional

from signal_dispatch.alerters.base import (
    SIGNAL_LABELS,
    BaseAlerter,
    format_price,
    format_profit,
)
from signal_dispatch.errors import ChannelSendFailed, ConfigurationInvalid
from signal_dispatch.models import ChannelKind, DiscordChannel, SignalEvent, SignalKind

logger = logging.getLogger(__name__)


# Discord embed color codes
COLORS = {
    SignalKind.ENTRY: 0x00FF00,        # Green
    SignalKind.EXIT: 0xFF0000,         # Red
    SignalKind.STOP_LOSS: 0xFFFF00,    # Yellow
    SignalKind.TAKE_PROFIT: 0xFFFF00,  # Yellow
}

WEBHOOK_URL_PATTERN = re.compile(
    r'^https://(?:ptb\.|canary\.)?discord(?:app)?\.com/api/webhooks/(\d+)/([\w-]+)/?$'
)

# Discord embed limits
MAX_TITLE_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024


def validate_webhook_url(webhook_url: str) -> None:
    """Raise ConfigurationInvalid unless webhook_url is a Discord webhook."""
    if not webhook_url:
        raise ConfigurationInvalid("Discord webhook URL is required")
    if not WEBHOOK_URL_PATTERN.match(webhook_url):
        raise ConfigurationInvalid("Invalid Discord webhook URL format")


class DiscordAlerter(BaseAlerter):
    """
    Discord webhook alerter with rich embed formatting.

    One alerter serves every configured webhook; the target comes from the
    DiscordChannel passed to send().

    Usage:
        alerter = DiscordAlerter()
        outcome = alerter.send(DiscordChannel(webhook_url, verified=True), signal)
    """

    channel_kind = ChannelKind.DISCORD

    # Discord rate limit: 30 requests per 60 seconds per webhook
    RATE_LIMIT_WINDOW = 60
    RATE_LIMIT_MAX = 25  # Stay under limit

    def __init__(
        self,
        username: str = 'Trading Signal Bot',
        avatar_url: Optional[str] = None,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
    ):
        """
        Initialize Discord alerter.

        Args:
            username: Bot username to display
            avatar_url: Optional avatar URL for bot
            timeout: Per-request timeout in seconds
            retry_attempts: Number of attempts on transient failure
            retry_delay: Base delay between retries (exponential backoff)
        """
        super().__init__(
            'discord',
            timeout=timeout,
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
        )
        self.username = username
        self.avatar_url = avatar_url

        # Rate limiting, keyed by webhook id
        self._request_times: Dict[str, List[float]] = {}
        self._rate_lock = threading.Lock()

    @staticmethod
    def _webhook_id(webhook_url: str) -> str:
        match = WEBHOOK_URL_PATTERN.match(webhook_url)
        return match.group(1) if match else webhook_url

    def _check_rate_limit(self, webhook_url: str) -> bool:
        """
        Check if we're within rate limits for a webhook and count the request.

        The check and the record happen under one lock, so concurrent sends
        to the same webhook cannot both take the last slot.

        Returns:
            True if OK to send, False if rate limited
        """
        now = time.time()
        key = self._webhook_id(webhook_url)

        with self._rate_lock:
            # Remove requests older than window
            recent = [
                t for t in self._request_times.get(key, [])
                if now - t < self.RATE_LIMIT_WINDOW
            ]
            self._request_times[key] = recent

            if len(recent) >= self.RATE_LIMIT_MAX:
                logger.warning(
                    f"Discord rate limit reached ({len(recent)} requests in window)"
                )
                return False

            recent.append(now)

        return True

    def _before_request(self, url: str) -> None:
        if not self._check_rate_limit(url):
            raise ChannelSendFailed("Discord webhook rate limit reached, message not sent", status_code=429)

    def _create_signal_embed(self, signal: SignalEvent) -> Dict[str, Any]:
        """
        Create Discord embed for a signal.

        Args:
            signal: Signal to format

        Returns:
            Discord embed dictionary
        """
        kind = signal.signal_kind
        title = f"Trading Signal Alert - {kind.value.upper()}"

        fields: List[Dict[str, Any]] = [
            {'name': 'Strategy', 'value': signal.display_name[:MAX_FIELD_VALUE_LENGTH], 'inline': True},
            {'name': 'Asset', 'value': signal.asset[:MAX_FIELD_VALUE_LENGTH], 'inline': True},
            {'name': 'Price', 'value': format_price(signal), 'inline': True},
            {'name': 'Timeframe', 'value': signal.timeframe or 'N/A', 'inline': True},
        ]

        profit = format_profit(signal)
        if profit:
            fields.append({'name': 'P&L', 'value': profit, 'inline': True})

        return {
            'title': title[:MAX_TITLE_LENGTH],
            'description': f"**{SIGNAL_LABELS[kind]}** signal generated",
            'color': COLORS[kind],
            'fields': fields,
            'timestamp': signal.timestamp.isoformat(),
            'footer': {'text': f"Signal ID: {signal.signal_id}"},
        }

    def _build_payload(self, embeds: List[Dict[str, Any]] = None, content: str = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {'username': self.username}
        if self.avatar_url:
            payload['avatar_url'] = self.avatar_url
        if embeds:
            payload['embeds'] = embeds
        if content:
            payload['content'] = content
        return payload

    def _send_webhook(self, webhook_url: str, payload: Dict[str, Any]) -> None:
        """
        Send payload to a Discord webhook.

        Raises:
            ChannelSendFailed: non-2xx response or network failure
        """
        response = self._post_json(webhook_url, payload, secret=webhook_url)

        if 200 <= response.status_code < 300:
            return

        if response.status_code == 429:
            raise ChannelSendFailed(
                f"Discord rate limited (retry after {self._retry_after(response)}s)",
                status_code=429,
            )

        raise ChannelSendFailed(
            f"Discord webhook error: {response.status_code} - {self._response_body(response, 200)}",
            status_code=response.status_code,
        )

    def _deliver(self, channel: DiscordChannel, signal: SignalEvent) -> None:
        validate_webhook_url(channel.webhook_url)
        payload = self._build_payload(embeds=[self._create_signal_embed(signal)])
        self._send_webhook(channel.webhook_url, payload)

    def test_connection(self, channel: DiscordChannel) -> bool:
        """
        Test webhook connection with a simple message.

        Returns:
            True if the test message was accepted
        """
        try:
            validate_webhook_url(channel.webhook_url)
            self._send_webhook(
                channel.webhook_url,
                self._build_payload(content='Signal notifications connected successfully!'),
            )
        except ChannelSendFailed as e:
            logger.error(f"Discord connection test failed: {e}")
            return False

        logger.info("Discord connection test successful")
        return True
