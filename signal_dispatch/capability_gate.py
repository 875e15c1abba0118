"""
Capability Gate

Derives the channels a strategy may notify on. Pure functions of their
inputs, no side effects.

Rules:
- External notifications are a paid capability: below "pro" the eligible
  set is empty regardless of configuration
- Otherwise only verified channels are eligible
"""

import logging
from typing import Iterable, List, Optional, Union

from signal_dispatch.models import (
    NotificationChannel,
    NotificationPreferences,
    SignalKind,
    StrategyConfig,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)

MINIMUM_TIER = SubscriptionTier.PRO


def tier_allows_notifications(subscription_tier: Union[str, SubscriptionTier, None]) -> bool:
    """True for pro and above (premium counts as pro)."""
    return SubscriptionTier.parse(subscription_tier).rank >= MINIMUM_TIER.rank


def eligible_channels(
    strategy: Optional[StrategyConfig],
    subscription_tier: Union[str, SubscriptionTier, None],
    configured_channels: Iterable[NotificationChannel],
) -> List[NotificationChannel]:
    """
    Effective channel set for a strategy.

    Args:
        strategy: Strategy the dispatch is for (used for logging only)
        subscription_tier: Owner's subscription tier
        configured_channels: Channels the owner configured

    Returns:
        Verified channels in configuration order, duplicates removed;
        empty below the pro tier
    """
    if not tier_allows_notifications(subscription_tier):
        return []

    eligible: List[NotificationChannel] = []
    for channel in configured_channels:
        if channel.verified is not True:
            continue
        if channel in eligible:
            continue
        eligible.append(channel)

    if strategy is not None:
        logger.debug(
            f"Eligible channels for {strategy.strategy_id}: "
            f"{[c.describe() for c in eligible]}"
        )
    return eligible


def kind_enabled(preferences: Optional[NotificationPreferences], kind: SignalKind) -> bool:
    """Whether the owner wants this signal kind delivered externally."""
    if preferences is None:
        return True
    return preferences.allows(kind)
