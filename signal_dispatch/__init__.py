"""
Signal Dispatch - quota-gated trading signal notifications

Delivers trading signals produced by user strategies to the owner's
external channels (email, Discord, Telegram) under a durable per-day
notification cap.

Flow per signal:
- Gate: manual on/off switch, per-kind preferences, subscription tier
  (pro and above) and verified channels
- Admission: daily quota check per strategy (fails open on store errors)
- Dispatch: concurrent fan-out to every eligible channel
- Finalize: per-channel delivery log entries, one quota increment

Components:
- models.py: SignalEvent, channels, StrategyConfig, quota and delivery types
- quota_ledger.py: SQLite per strategy-day counter
- delivery_log.py: Append-only delivery audit trail
- capability_gate.py: Eligible channel derivation
- alerters/: Channel adapters (email, Discord, Telegram)
- coordinators/: DispatchCoordinator state machine
- audit_log.py: Structured JSON dispatch logging
- config.py: Configuration dataclasses
- api/: Flask REST API
- scheduler.py: Daily quota retention sweep
"""

from signal_dispatch.config import (
    ApiConfig,
    ChannelConfig,
    DeliveryLogConfig,
    DispatchConfig,
    LoggingConfig,
    NotificationConfig,
    QuotaConfig,
)
from signal_dispatch.errors import (
    ChannelSendFailed,
    ConfigurationInvalid,
    InvalidSignalEvent,
    LedgerUnavailable,
    LogAppendFailed,
    NotificationError,
)
from signal_dispatch.models import (
    ChannelKind,
    DeliveryLogEntry,
    DeliveryOutcome,
    DeliveryStatus,
    DiscordChannel,
    DispatchOutcome,
    DispatchResult,
    DispatchState,
    EmailChannel,
    NotificationPreferences,
    QuotaRecord,
    QuotaUsage,
    SignalEvent,
    SignalKind,
    StrategyConfig,
    SubscriptionTier,
    TelegramChannel,
)
from signal_dispatch.quota_ledger import QuotaLedger
from signal_dispatch.delivery_log import DeliveryLog
from signal_dispatch.capability_gate import eligible_channels
from signal_dispatch.coordinators import DispatchCoordinator

__all__ = [
    # Config
    'ApiConfig',
    'ChannelConfig',
    'DeliveryLogConfig',
    'DispatchConfig',
    'LoggingConfig',
    'NotificationConfig',
    'QuotaConfig',
    # Errors
    'ChannelSendFailed',
    'ConfigurationInvalid',
    'InvalidSignalEvent',
    'LedgerUnavailable',
    'LogAppendFailed',
    'NotificationError',
    # Models
    'ChannelKind',
    'DeliveryLogEntry',
    'DeliveryOutcome',
    'DeliveryStatus',
    'DiscordChannel',
    'DispatchOutcome',
    'DispatchResult',
    'DispatchState',
    'EmailChannel',
    'NotificationPreferences',
    'QuotaRecord',
    'QuotaUsage',
    'SignalEvent',
    'SignalKind',
    'StrategyConfig',
    'SubscriptionTier',
    'TelegramChannel',
    # Components
    'QuotaLedger',
    'DeliveryLog',
    'eligible_channels',
    'DispatchCoordinator',
]
