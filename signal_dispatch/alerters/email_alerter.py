"""
Email Alerter

Sends signal emails through a Resend-compatible HTTP API
(POST {api_url} with a Bearer API key and a JSON message body).

Subject and body are rendered from per-kind templates; every
user-supplied value is HTML-escaped in the HTML part.
"""

import html
import logging
import re
from typing import Any, Dict, Optional

from signal_dispatch.alerters.base import (
    SIGNAL_LABELS,
    BaseAlerter,
    format_price,
    format_profit,
)
from signal_dispatch.errors import ChannelSendFailed, ConfigurationInvalid
from signal_dispatch.models import ChannelKind, EmailChannel, SignalEvent, SignalKind

logger = logging.getLogger(__name__)

RESEND_API_URL = 'https://api.resend.com/emails'

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')

SUBJECT_TEMPLATES = {
    SignalKind.ENTRY: "Entry signal: {asset} ({strategy})",
    SignalKind.EXIT: "Exit signal: {asset} ({strategy})",
    SignalKind.STOP_LOSS: "Stop loss hit: {asset} ({strategy})",
    SignalKind.TAKE_PROFIT: "Take profit hit: {asset} ({strategy})",
}

HTML_TEMPLATE = """\
<h2>Trading Signal Alert</h2>
<p><strong>Signal Type:</strong> {kind}</p>
<p><strong>Strategy:</strong> {strategy}</p>
<p><strong>Asset:</strong> {asset}</p>
<p><strong>Price:</strong> {price}</p>
<p><strong>Timeframe:</strong> {timeframe}</p>
{profit_row}<p><strong>Time:</strong> {time}</p>
"""


class EmailAlerter(BaseAlerter):
    """
    Email alerter for a Resend-style provider.

    Usage:
        alerter = EmailAlerter(api_key='re_...', from_address='signals@example.com')
        outcome = alerter.send(EmailChannel('user@example.com', verified=True), signal)
    """

    channel_kind = ChannelKind.EMAIL

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_address: str = 'Trading Signals <signals@example.com>',
        api_url: str = RESEND_API_URL,
        timeout: float = 10.0,
        retry_attempts: int = 2,
        retry_delay: float = 1.0,
    ):
        """
        Initialize email alerter.

        Args:
            api_key: Provider API key (sends fail as misconfigured without one)
            from_address: Sender address
            api_url: Provider send endpoint
        """
        super().__init__(
            'email',
            timeout=timeout,
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
        )
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url

    def format_subject(self, signal: SignalEvent) -> str:
        return SUBJECT_TEMPLATES[signal.signal_kind].format(
            asset=signal.asset,
            strategy=signal.display_name,
        )

    def format_html(self, signal: SignalEvent) -> str:
        profit = format_profit(signal)
        profit_row = f"<p><strong>P&amp;L:</strong> {profit}</p>\n" if profit else ''
        return HTML_TEMPLATE.format(
            kind=SIGNAL_LABELS[signal.signal_kind],
            strategy=html.escape(signal.display_name),
            asset=html.escape(signal.asset),
            price=html.escape(format_price(signal)),
            timeframe=html.escape(signal.timeframe or 'N/A'),
            profit_row=profit_row,
            time=signal.timestamp.isoformat(),
        )

    def _build_message(self, to_address: str, subject: str, html_body: str, text: str) -> Dict[str, Any]:
        return {
            'from': self.from_address,
            'to': [to_address],
            'subject': subject,
            'html': html_body,
            'text': text,
        }

    def _send_email(self, to_address: str, message: Dict[str, Any]) -> None:
        if not self.api_key:
            raise ConfigurationInvalid("Email provider API key not configured")
        if not to_address or not EMAIL_PATTERN.match(to_address):
            raise ConfigurationInvalid(f"Invalid email address: {to_address!r}")

        response = self._post_json(
            self.api_url,
            message,
            headers={'Authorization': f"Bearer {self.api_key}"},
            secret=self.api_key,
        )
        if 200 <= response.status_code < 300:
            return

        raise ChannelSendFailed(
            f"Email provider error {response.status_code}: {self._response_body(response, 200)}",
            status_code=response.status_code,
        )

    def _deliver(self, channel: EmailChannel, signal: SignalEvent) -> None:
        message = self._build_message(
            channel.address,
            self.format_subject(signal),
            self.format_html(signal),
            self.format_signal_message(signal),
        )
        self._send_email(channel.address, message)

    def test_connection(self, channel: EmailChannel) -> bool:
        """
        Send a short test email to the channel's address.

        Returns:
            True if the provider accepted the message
        """
        message = self._build_message(
            channel.address,
            'Signal notifications test',
            '<p>Signal notifications connected successfully!</p>',
            'Signal notifications connected successfully!',
        )
        try:
            self._send_email(channel.address, message)
        except ChannelSendFailed as e:
            logger.error(f"Email connection test failed: {e}")
            return False

        logger.info("Email connection test successful")
        return True
