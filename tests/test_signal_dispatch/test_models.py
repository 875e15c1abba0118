"""
Tests for signal_dispatch/models.py

Covers:
- SignalEvent validation, id generation and payload parsing
- Channel parsing
- StrategyConfig limit defaults
- Quota and dispatch result views
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from signal_dispatch.errors import InvalidSignalEvent, NotificationError
from signal_dispatch.models import (
    DEFAULT_DAILY_LIMIT,
    ChannelDelivery,
    ChannelKind,
    DeliveryOutcome,
    DeliveryStatus,
    DiscordChannel,
    DispatchResult,
    DispatchState,
    EmailChannel,
    NotificationPreferences,
    QuotaRecord,
    SignalEvent,
    SignalKind,
    StrategyConfig,
    SubscriptionTier,
    TelegramChannel,
    channel_from_dict,
)


class TestSignalEvent:
    """Tests for SignalEvent construction."""

    def test_generated_signal_id(self, signal):
        """signal_id is strategy, kind and UTC second."""
        assert signal.signal_id == 'strat-1_entry_20260316143005'

    def test_explicit_signal_id_kept(self, make_signal):
        assert make_signal(signal_id='abc').signal_id == 'abc'

    def test_same_second_same_id(self, make_signal):
        """Two evaluations in the same second collide on purpose."""
        a = make_signal(timestamp=datetime(2026, 3, 16, 14, 30, 5, 100, tzinfo=timezone.utc))
        b = make_signal(timestamp=datetime(2026, 3, 16, 14, 30, 5, 900000, tzinfo=timezone.utc))
        assert a.signal_id == b.signal_id

    def test_naive_timestamp_is_utc(self, make_signal):
        event = make_signal(timestamp=datetime(2026, 3, 16, 14, 30, 5))
        assert event.timestamp.tzinfo is timezone.utc

    def test_price_coerced_to_decimal(self, make_signal):
        event = make_signal(price=101.5)
        assert event.price == Decimal('101.5')

    def test_kind_coerced_from_string(self, make_signal):
        assert make_signal(signal_kind='stop_loss').signal_kind is SignalKind.STOP_LOSS

    def test_unknown_kind_rejected(self, make_signal):
        with pytest.raises(InvalidSignalEvent):
            make_signal(signal_kind='rebalance')

    def test_negative_price_rejected(self, make_signal):
        with pytest.raises(InvalidSignalEvent):
            make_signal(price=Decimal('-1'))

    def test_non_numeric_price_rejected(self, make_signal):
        with pytest.raises(InvalidSignalEvent):
            make_signal(price='abc')

    def test_missing_strategy_id_rejected(self, make_signal):
        with pytest.raises(InvalidSignalEvent):
            make_signal(strategy_id='')

    def test_profit_on_entry_rejected(self, make_signal):
        """profit_percentage only belongs to exit-family kinds."""
        with pytest.raises(InvalidSignalEvent):
            make_signal(profit_percentage=Decimal('2'))

    def test_profit_on_take_profit_allowed(self, make_signal):
        event = make_signal(signal_kind=SignalKind.TAKE_PROFIT, profit_percentage='4.2')
        assert event.profit_percentage == Decimal('4.2')

    def test_invalid_signal_is_value_error(self, make_signal):
        with pytest.raises(ValueError):
            make_signal(asset='')

    def test_invalid_signal_is_notification_error(self):
        assert issubclass(InvalidSignalEvent, NotificationError)

    def test_display_name_fallback(self, make_signal):
        assert make_signal(strategy_name='').display_name == 'Trading Strategy'

    def test_frozen(self, signal):
        with pytest.raises(AttributeError):
            signal.asset = 'MSFT'


class TestSignalEventFromDict:
    """Tests for parsing JSON payloads."""

    def test_camel_case_payload(self):
        event = SignalEvent.from_dict({
            'strategyId': 's-9',
            'strategyName': 'RSI Bounce',
            'userId': 'u-9',
            'signalKind': 'exit',
            'targetAsset': 'BTC/USD',
            'price': '64000.5',
            'timestamp': '2026-03-16T14:30:05Z',
            'profitPercentage': -1.25,
        })
        assert event.strategy_id == 's-9'
        assert event.signal_kind is SignalKind.EXIT
        assert event.asset == 'BTC/USD'
        assert event.timestamp == datetime(2026, 3, 16, 14, 30, 5, tzinfo=timezone.utc)
        assert event.profit_percentage == Decimal('-1.25')

    def test_round_trip_dict(self, exit_signal):
        assert SignalEvent.from_dict(exit_signal.to_dict()) == exit_signal

    def test_none_payload_rejected(self):
        with pytest.raises(InvalidSignalEvent):
            SignalEvent.from_dict(None)

    def test_missing_price_rejected(self):
        with pytest.raises(InvalidSignalEvent, match='price'):
            SignalEvent.from_dict({
                'strategy_id': 's', 'user_id': 'u', 'signal_kind': 'entry', 'asset': 'AAPL',
            })

    def test_bad_timestamp_rejected(self):
        with pytest.raises(InvalidSignalEvent, match='timestamp'):
            SignalEvent.from_dict({
                'strategy_id': 's', 'user_id': 'u', 'signal_kind': 'entry',
                'asset': 'AAPL', 'price': 1, 'timestamp': 'yesterday',
            })


class TestChannels:
    """Tests for channel parsing."""

    def test_discord_from_dict(self):
        channel = channel_from_dict({'kind': 'discord', 'webhookUrl': 'https://x', 'verified': True})
        assert channel == DiscordChannel('https://x', verified=True)
        assert channel.kind is ChannelKind.DISCORD

    def test_telegram_from_dict(self):
        channel = channel_from_dict({'kind': 'telegram', 'bot_token': 't', 'chat_id': 42})
        assert channel == TelegramChannel('t', '42', verified=False)

    def test_email_from_dict(self):
        channel = channel_from_dict({'kind': 'EMAIL', 'address': 'a@b.co', 'verified': True})
        assert isinstance(channel, EmailChannel)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            channel_from_dict({'kind': 'sms'})

    def test_email_describe_masks_address(self):
        assert EmailChannel('trader@example.com').describe() == 'email:tr***@example.com'


class TestSubscriptionTier:

    @pytest.mark.parametrize('raw,expected', [
        ('pro', SubscriptionTier.PRO),
        ('PREMIUM', SubscriptionTier.PREMIUM),
        ('free', SubscriptionTier.FREE),
        ('enterprise', SubscriptionTier.FREE),
        (None, SubscriptionTier.FREE),
    ])
    def test_parse(self, raw, expected):
        assert SubscriptionTier.parse(raw) is expected

    def test_premium_outranks_pro(self):
        assert SubscriptionTier.PREMIUM.rank > SubscriptionTier.PRO.rank > SubscriptionTier.FREE.rank


class TestStrategyConfig:
    """Tests for limit defaults and parsing."""

    @pytest.mark.parametrize('limit', [None, 0])
    def test_falsy_limit_defaults_to_five(self, limit):
        assert StrategyConfig('s', daily_signal_limit=limit).daily_signal_limit == DEFAULT_DAILY_LIMIT

    def test_custom_limit(self):
        assert StrategyConfig('s', daily_signal_limit=12).daily_signal_limit == 12

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            StrategyConfig('s', daily_signal_limit=-2)

    def test_from_dict(self):
        config = StrategyConfig.from_dict({
            'id': 's-1',
            'dailySignalLimit': 3,
            'signalNotificationsEnabled': False,
            'channels': [{'kind': 'email', 'address': 'a@b.co', 'verified': True}],
            'preferences': {'stop_loss_alerts': False},
        })
        assert config.strategy_id == 's-1'
        assert config.daily_signal_limit == 3
        assert config.signal_notifications_enabled is False
        assert len(config.channels) == 1
        assert config.preferences.allows(SignalKind.STOP_LOSS) is False
        assert config.preferences.allows(SignalKind.ENTRY) is True

    def test_string_booleans_are_parsed_not_coerced(self):
        config = StrategyConfig.from_dict({
            'strategy_id': 's-1',
            'signal_notifications_enabled': 'false',
            'channels': [{'kind': 'telegram', 'bot_token': 't', 'chat_id': '1', 'verified': 'FALSE'}],
        })
        assert config.signal_notifications_enabled is False
        assert config.channels[0].verified is False

    @pytest.mark.parametrize('value', ['0', 'no', 1, ''])
    def test_non_boolean_switch_rejected(self, value):
        with pytest.raises(ValueError):
            StrategyConfig.from_dict({'strategy_id': 's-1', 'signal_notifications_enabled': value})

    def test_channels_must_be_list(self):
        with pytest.raises(ValueError):
            StrategyConfig.from_dict({'strategy_id': 's-1', 'channels': 'telegram'})

    def test_channel_entries_must_be_objects(self):
        with pytest.raises(ValueError):
            StrategyConfig.from_dict({'strategy_id': 's-1', 'channels': ['oops']})


class TestNotificationPreferences:

    def test_defaults_allow_everything(self):
        prefs = NotificationPreferences()
        assert all(prefs.allows(kind) for kind in SignalKind)

    def test_exit_opt_out(self):
        prefs = NotificationPreferences(exit_signals=False)
        assert prefs.allows(SignalKind.EXIT) is False
        assert prefs.allows(SignalKind.TAKE_PROFIT) is True

    def test_from_dict_string_booleans(self):
        prefs = NotificationPreferences.from_dict({'entry_signals': 'false', 'exit_signals': 'True'})
        assert prefs.entry_signals is False
        assert prefs.exit_signals is True

    def test_from_dict_rejects_non_boolean(self):
        with pytest.raises(ValueError):
            NotificationPreferences.from_dict({'stop_loss_alerts': '0'})

    def test_from_dict_rejects_non_object(self):
        with pytest.raises(ValueError):
            NotificationPreferences.from_dict(['entry_signals'])


class TestQuotaRecord:

    def test_remaining_and_reached(self):
        record = QuotaRecord('s', date(2026, 3, 16), notification_count=5, limit=5)
        assert record.remaining == 0
        assert record.is_limit_reached is True

    def test_usage_view(self):
        usage = QuotaRecord('s', date(2026, 3, 16), notification_count=2, limit=5).to_usage()
        assert usage.to_dict() == {'count': 2, 'limit': 5, 'remaining': 3, 'is_limit_reached': False}

    def test_remaining_never_negative(self):
        """Concurrent admissions may overshoot the limit slightly."""
        assert QuotaRecord('s', date(2026, 3, 16), notification_count=7, limit=5).remaining == 0


class TestDispatchResult:

    def test_counts(self):
        result = DispatchResult(signal_id='x', strategy_id='s')
        result.deliveries.append(ChannelDelivery(ChannelKind.DISCORD, DeliveryOutcome.failed('bad')))
        result.deliveries.append(ChannelDelivery(ChannelKind.TELEGRAM, DeliveryOutcome.sent()))
        assert result.notifications_sent == 1
        assert result.channels_attempted == 2

    def test_transitions(self):
        result = DispatchResult(signal_id='x', strategy_id='s')
        result.transition(DispatchState.FINALIZED)
        assert result.states == [DispatchState.START, DispatchState.FINALIZED]
        assert result.final_state is DispatchState.FINALIZED

    def test_to_dict(self):
        result = DispatchResult(signal_id='x', strategy_id='s', signal_date=date(2026, 3, 16))
        data = result.to_dict()
        assert data['signal_date'] == '2026-03-16'
        assert data['states'] == ['START']
        assert data['quota'] is None
        assert data['recorded'] is True


class TestDeliveryOutcome:

    def test_sent(self):
        outcome = DeliveryOutcome.sent()
        assert outcome.ok
        assert outcome.status is DeliveryStatus.SENT
        assert outcome.error_message is None

    def test_failed(self):
        outcome = DeliveryOutcome.failed('timeout')
        assert not outcome.ok
        assert outcome.error_message == 'timeout'
