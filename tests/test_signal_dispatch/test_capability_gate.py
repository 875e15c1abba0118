"""
Tests for signal_dispatch/capability_gate.py
"""

import pytest

from signal_dispatch.capability_gate import (
    eligible_channels,
    kind_enabled,
    tier_allows_notifications,
)
from signal_dispatch.models import (
    DiscordChannel,
    EmailChannel,
    NotificationPreferences,
    SignalKind,
    SubscriptionTier,
)


class TestTier:

    @pytest.mark.parametrize('tier,allowed', [
        ('free', False),
        ('pro', True),
        ('premium', True),
        (SubscriptionTier.PRO, True),
        ('unknown', False),
        (None, False),
    ])
    def test_tier_allows_notifications(self, tier, allowed):
        assert tier_allows_notifications(tier) is allowed


class TestEligibleChannels:
    """Tests for eligible channel derivation."""

    def test_free_tier_gets_nothing(self, make_strategy, discord_channel, email_channel):
        channels = [discord_channel, email_channel]
        assert eligible_channels(make_strategy(channels=channels), 'free', channels) == []

    def test_only_verified(self, make_strategy, discord_channel):
        unverified = EmailChannel('x@example.com', verified=False)
        result = eligible_channels(make_strategy(), 'pro', [unverified, discord_channel])
        assert result == [discord_channel]

    def test_premium_counts_as_pro(self, make_strategy, discord_channel):
        assert eligible_channels(make_strategy(), 'premium', [discord_channel]) == [discord_channel]

    def test_configuration_order_kept(self, make_strategy, discord_channel, telegram_channel, email_channel):
        channels = [telegram_channel, email_channel, discord_channel]
        assert eligible_channels(make_strategy(), 'pro', channels) == channels

    def test_duplicates_removed(self, make_strategy, discord_channel):
        result = eligible_channels(make_strategy(), 'pro', [discord_channel, discord_channel])
        assert result == [discord_channel]

    def test_same_kind_different_targets_kept(self, make_strategy):
        a = DiscordChannel('https://discord.com/api/webhooks/1/a', verified=True)
        b = DiscordChannel('https://discord.com/api/webhooks/2/b', verified=True)
        assert eligible_channels(make_strategy(), 'pro', [a, b]) == [a, b]

    def test_no_channels(self, make_strategy):
        assert eligible_channels(make_strategy(), 'pro', []) == []

    def test_pure(self, make_strategy, discord_channel):
        channels = [discord_channel]
        eligible_channels(make_strategy(), 'pro', channels)
        assert channels == [discord_channel]


class TestKindEnabled:

    def test_no_preferences(self):
        assert kind_enabled(None, SignalKind.EXIT) is True

    def test_opted_out(self):
        prefs = NotificationPreferences(take_profit_alerts=False)
        assert kind_enabled(prefs, SignalKind.TAKE_PROFIT) is False
        assert kind_enabled(prefs, SignalKind.ENTRY) is True
