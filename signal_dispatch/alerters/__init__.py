"""
Alerters for signal notification delivery.

- EmailAlerter: Resend-style email API
- DiscordAlerter: Discord webhooks with rich embeds
- TelegramAlerter: Telegram Bot API sendMessage
"""

from signal_dispatch.alerters.base import BaseAlerter
from signal_dispatch.alerters.discord_alerter import DiscordAlerter
from signal_dispatch.alerters.email_alerter import EmailAlerter
from signal_dispatch.alerters.telegram_alerter import TelegramAlerter

__all__ = [
    'BaseAlerter',
    'DiscordAlerter',
    'EmailAlerter',
    'TelegramAlerter',
]
