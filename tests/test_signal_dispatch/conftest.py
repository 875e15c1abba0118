"""
Shared fixtures for signal dispatch tests.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import Mock

import pytest

from signal_dispatch.delivery_log import DeliveryLog
from signal_dispatch.models import (
    DiscordChannel,
    EmailChannel,
    SignalEvent,
    SignalKind,
    StrategyConfig,
    TelegramChannel,
)
from signal_dispatch.quota_ledger import QuotaLedger
from signal_dispatch.utils.trading_day import SignalDayClock

VALID_WEBHOOK = "https://discord.com/api/webhooks/123456789/abcdefghijklmnop"
TRADING_DAY = date(2026, 3, 16)


@pytest.fixture
def make_signal():
    """Factory for SignalEvent with sensible defaults."""
    def _make(**overrides) -> SignalEvent:
        values = dict(
            strategy_id='strat-1',
            strategy_name='Golden Cross',
            user_id='user-1',
            signal_kind=SignalKind.ENTRY,
            asset='AAPL',
            price=Decimal('187.25'),
            timestamp=datetime(2026, 3, 16, 14, 30, 5, tzinfo=timezone.utc),
            timeframe='1h',
        )
        values.update(overrides)
        return SignalEvent(**values)
    return _make


@pytest.fixture
def signal(make_signal):
    return make_signal()


@pytest.fixture
def exit_signal(make_signal):
    return make_signal(signal_kind=SignalKind.EXIT, profit_percentage=Decimal('3.5'))


@pytest.fixture
def discord_channel():
    return DiscordChannel(webhook_url=VALID_WEBHOOK, verified=True)


@pytest.fixture
def telegram_channel():
    return TelegramChannel(bot_token='123456:ABC-token', chat_id='987654', verified=True)


@pytest.fixture
def email_channel():
    return EmailChannel(address='trader@example.com', verified=True)


@pytest.fixture
def make_strategy():
    def _make(**overrides) -> StrategyConfig:
        values = dict(strategy_id='strat-1', daily_signal_limit=5)
        values.update(overrides)
        return StrategyConfig(**values)
    return _make


@pytest.fixture
def fixed_clock():
    """Clock pinned to TRADING_DAY; set clock.today.return_value to move it."""
    clock = Mock(spec=SignalDayClock)
    clock.today.return_value = TRADING_DAY
    clock.retention_cutoff.side_effect = (
        lambda retention_days=1, today=None: SignalDayClock().retention_cutoff(
            retention_days, today or clock.today.return_value
        )
    )
    return clock


@pytest.fixture
def ledger(tmp_path):
    return QuotaLedger(str(tmp_path / 'quota.db'))


@pytest.fixture
def delivery_log(tmp_path):
    return DeliveryLog(str(tmp_path / 'delivery_log.db'))


@pytest.fixture
def http_response():
    """Factory for mock requests.Response objects."""
    def _make(status_code=200, json_data=None, text=''):
        response = Mock()
        response.status_code = status_code
        response.text = text
        response.headers = {}
        if json_data is None:
            response.json.side_effect = ValueError("No JSON")
        else:
            response.json.return_value = json_data
        return response
    return _make
