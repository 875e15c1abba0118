"""
Telegram Alerter

Posts signal messages through the Telegram Bot API (sendMessage).

Messages use HTML parse mode. Strategy name, asset and timeframe are
user-supplied, so they are HTML-escaped before rendering. Bot tokens are
redacted from error messages.
"""

import html
import logging
from typing import Any, Dict, Optional

import requests

from signal_dispatch.alerters.base import (
    SIGNAL_LABELS,
    BaseAlerter,
    format_price,
    format_profit,
)
from signal_dispatch.errors import ChannelSendFailed, ConfigurationInvalid
from signal_dispatch.models import ChannelKind, SignalEvent, TelegramChannel

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = 'https://api.telegram.org'

# Telegram sendMessage text limit
MAX_MESSAGE_LENGTH = 4096

# Per-field cap on raw values. Four fields at worst-case escaping (5x for '&')
# plus the fixed labels stay under MAX_MESSAGE_LENGTH.
MAX_FIELD_LENGTH = 180


def _escape(value: str, limit: int = MAX_FIELD_LENGTH) -> str:
    """Truncate the raw value, then escape it. The rendered HTML is never sliced."""
    value = value or ''
    if len(value) > limit:
        value = value[:limit - 3] + '...'
    return html.escape(value, quote=False)


class TelegramAlerter(BaseAlerter):
    """
    Telegram Bot API alerter.

    Usage:
        alerter = TelegramAlerter()
        outcome = alerter.send(TelegramChannel(token, chat_id, verified=True), signal)
    """

    channel_kind = ChannelKind.TELEGRAM

    def __init__(
        self,
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
        disable_web_page_preview: bool = True,
    ):
        super().__init__(
            'telegram',
            timeout=timeout,
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
        )
        self.api_base = api_base.rstrip('/')
        self.disable_web_page_preview = disable_web_page_preview

    def _method_url(self, bot_token: str, method: str) -> str:
        return f"{self.api_base}/bot{bot_token}/{method}"

    @staticmethod
    def _validate(channel: TelegramChannel) -> None:
        if not channel.bot_token:
            raise ConfigurationInvalid("Telegram bot token is required")
        if not channel.chat_id:
            raise ConfigurationInvalid("Telegram chat id is required")

    def format_signal_message(self, signal: SignalEvent) -> str:
        """HTML message body for sendMessage."""
        lines = [
            f"<b>Trading Signal - {SIGNAL_LABELS[signal.signal_kind]}</b>",
            '',
            f"<b>Strategy:</b> {_escape(signal.display_name)}",
            f"<b>Asset:</b> {_escape(signal.asset)}",
            f"<b>Price:</b> {_escape(format_price(signal))}",
            f"<b>Timeframe:</b> {_escape(signal.timeframe) or 'N/A'}",
        ]
        profit = format_profit(signal)
        if profit:
            lines.append(f"<b>P&amp;L:</b> {profit}")
        lines.append(
            f"<b>Time:</b> {signal.timestamp.strftime('%Y-%m-%d %H:%M:%S %Z')}"
        )
        return '\n'.join(lines)

    @staticmethod
    def _describe_error(response: requests.Response) -> str:
        """Telegram puts the reason in the 'description' field."""
        try:
            data = response.json()
        except ValueError:
            data = None
        description: Optional[str] = None
        if isinstance(data, dict):
            description = data.get('description')
        return description or f"HTTP {response.status_code}"

    def _call(self, channel: TelegramChannel, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Call a Bot API method.

        Returns:
            The 'result' object of a successful call

        Raises:
            ChannelSendFailed: transport failure or ok=false
        """
        response = self._post_json(
            self._method_url(channel.bot_token, method),
            payload,
            secret=channel.bot_token,
        )

        try:
            data = response.json()
        except ValueError:
            data = None

        if 200 <= response.status_code < 300 and isinstance(data, dict) and data.get('ok'):
            return data.get('result') or {}

        raise ChannelSendFailed(
            f"Telegram API error: {self._describe_error(response)}",
            status_code=response.status_code,
        )

    def _deliver(self, channel: TelegramChannel, signal: SignalEvent) -> None:
        self._validate(channel)
        self._call(channel, 'sendMessage', {
            'chat_id': channel.chat_id,
            'text': self.format_signal_message(signal),
            'parse_mode': 'HTML',
            'disable_web_page_preview': self.disable_web_page_preview,
        })

    def test_connection(self, channel: TelegramChannel) -> bool:
        """
        Verify the bot token with getMe, then post a test message to the chat.

        Returns:
            True if Telegram recognizes the bot and accepted the message
        """
        try:
            self._validate(channel)
            bot = self._call(channel, 'getMe', {})
            self._call(channel, 'sendMessage', {
                'chat_id': channel.chat_id,
                'text': 'Signal notifications connected successfully!',
            })
        except ChannelSendFailed as e:
            logger.error(f"Telegram connection test failed: {e}")
            return False

        logger.info(f"Telegram connection test successful (bot: {bot.get('username', 'unknown')})")
        return True
