"""
Signal Dispatch Data Model

Dataclasses and enums shared by the ledger, alerters, delivery log and
dispatch coordinator.

Key Types:
1. SignalEvent - immutable record of a strategy's produced signal
2. EmailChannel / DiscordChannel / TelegramChannel - configured channels
3. StrategyConfig - per-strategy notification settings
4. QuotaRecord / QuotaUsage - per strategy-day notification counts
5. DeliveryOutcome / DeliveryLogEntry - per-channel delivery results
6. DispatchResult - aggregate result of one dispatch invocation
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Union

from signal_dispatch.errors import InvalidSignalEvent

DEFAULT_DAILY_LIMIT = 5


class SignalKind(str, Enum):
    """Actionable signal kinds produced by strategy evaluation."""
    ENTRY = 'entry'
    EXIT = 'exit'
    STOP_LOSS = 'stop_loss'
    TAKE_PROFIT = 'take_profit'

    @property
    def is_exit_family(self) -> bool:
        """Exit, stop-loss and take-profit all close a position."""
        return self is not SignalKind.ENTRY


class ChannelKind(str, Enum):
    """External delivery media."""
    EMAIL = 'email'
    DISCORD = 'discord'
    TELEGRAM = 'telegram'


class DeliveryStatus(str, Enum):
    """Outcome status of a single delivery attempt."""
    SENT = 'sent'
    FAILED = 'failed'
    PENDING = 'pending'


class SubscriptionTier(str, Enum):
    """Billing tiers, consumed as a capability flag."""
    FREE = 'free'
    PRO = 'pro'
    PREMIUM = 'premium'

    @property
    def rank(self) -> int:
        return TIER_RANK[self]

    @classmethod
    def parse(cls, value: Union[str, 'SubscriptionTier', None]) -> 'SubscriptionTier':
        """Parse a tier name; unknown or missing tiers are treated as free."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.FREE


TIER_RANK = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.PRO: 1,
    SubscriptionTier.PREMIUM: 2,
}


class DispatchState(str, Enum):
    """States visited by one dispatch invocation."""
    START = 'START'
    GATED = 'GATED'
    ADMITTED = 'ADMITTED'
    REJECTED = 'REJECTED'
    DISPATCHED = 'DISPATCHED'
    FINALIZED = 'FINALIZED'


class DispatchOutcome(str, Enum):
    """Why a dispatch finalized the way it did."""
    NOTIFIED = 'notified'
    QUOTA_EXHAUSTED = 'quota_exhausted'
    NO_ELIGIBLE_CHANNELS = 'no_eligible_channels'
    NOTIFICATIONS_DISABLED = 'notifications_disabled'
    KIND_DISABLED = 'kind_disabled'


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _pick(data: Dict[str, Any], *names: str, default: Any = None) -> Any:
    """Return the first present key (accepts snake_case and camelCase)."""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default


def _to_bool(value: Any, name: str, default: bool) -> bool:
    """Strict boolean from JSON: real booleans or "true"/"false" strings only."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise ValueError(f"{name} must be a boolean, got {value!r}")


# =============================================================================
# Signal
# =============================================================================

@dataclass(frozen=True)
class SignalEvent:
    """
    Immutable record of a strategy's produced signal.

    Created once by the evaluation engine and consumed once by the
    dispatch coordinator. profit_percentage is only allowed on exit-family
    kinds. signal_id is generated from strategy, kind and timestamp when
    not supplied.
    """
    strategy_id: str
    strategy_name: str
    user_id: str
    signal_kind: SignalKind
    asset: str
    price: Decimal
    timestamp: datetime
    timeframe: str = ''
    profit_percentage: Optional[Decimal] = None
    signal_id: str = ''

    def __post_init__(self):
        for name in ('strategy_id', 'user_id', 'asset'):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidSignalEvent(f"SignalEvent.{name} is required")

        try:
            kind = SignalKind(self.signal_kind)
        except ValueError:
            raise InvalidSignalEvent(f"Unknown signal kind: {self.signal_kind!r}")
        object.__setattr__(self, 'signal_kind', kind)

        object.__setattr__(self, 'price', _to_decimal(self.price, 'price'))
        if not self.price.is_finite() or self.price < 0:
            raise InvalidSignalEvent(f"Invalid price: {self.price}")

        if not isinstance(self.timestamp, datetime):
            raise InvalidSignalEvent("SignalEvent.timestamp must be a datetime")
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, 'timestamp', self.timestamp.replace(tzinfo=timezone.utc))

        if self.profit_percentage is not None:
            if not kind.is_exit_family:
                raise InvalidSignalEvent(
                    f"profit_percentage is only valid for exit-family signals, not {kind.value}"
                )
            object.__setattr__(
                self, 'profit_percentage',
                _to_decimal(self.profit_percentage, 'profit_percentage'),
            )

        if not self.signal_id:
            object.__setattr__(self, 'signal_id', self.generate_id())

    def generate_id(self) -> str:
        """
        Key format: {strategy_id}_{kind}_{UTC timestamp to the second}.

        Two evaluations of the same strategy/kind in the same second map to
        the same id.
        """
        ts = self.timestamp.astimezone(timezone.utc).strftime('%Y%m%d%H%M%S')
        return f"{self.strategy_id}_{self.signal_kind.value}_{ts}"

    @property
    def display_name(self) -> str:
        return self.strategy_name or 'Trading Strategy'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'signal_id': self.signal_id,
            'strategy_id': self.strategy_id,
            'strategy_name': self.strategy_name,
            'user_id': self.user_id,
            'signal_kind': self.signal_kind.value,
            'asset': self.asset,
            'price': str(self.price),
            'timestamp': self.timestamp.isoformat(),
            'timeframe': self.timeframe,
            'profit_percentage': (
                str(self.profit_percentage) if self.profit_percentage is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SignalEvent':
        """Build from a JSON payload. Raises InvalidSignalEvent on bad input."""
        if not isinstance(data, dict):
            raise InvalidSignalEvent("Signal payload must be an object")

        raw_ts = _pick(data, 'timestamp')
        if isinstance(raw_ts, str):
            try:
                timestamp = datetime.fromisoformat(raw_ts.replace('Z', '+00:00'))
            except ValueError:
                raise InvalidSignalEvent(f"Invalid timestamp: {raw_ts!r}")
        elif raw_ts is None:
            timestamp = _utcnow()
        else:
            timestamp = raw_ts

        price = _pick(data, 'price')
        if price is None:
            raise InvalidSignalEvent("SignalEvent.price is required")

        return cls(
            strategy_id=str(_pick(data, 'strategy_id', 'strategyId', default='')),
            strategy_name=str(_pick(data, 'strategy_name', 'strategyName', default='')),
            user_id=str(_pick(data, 'user_id', 'userId', default='')),
            signal_kind=_pick(
                data, 'signal_kind', 'signalKind', 'signal_type', 'signalType', default=''
            ),
            asset=str(_pick(data, 'asset', 'target_asset', 'targetAsset', default='')),
            price=price,
            timestamp=timestamp,
            timeframe=str(_pick(data, 'timeframe', default='')),
            profit_percentage=_pick(data, 'profit_percentage', 'profitPercentage'),
            signal_id=str(_pick(data, 'signal_id', 'signalId', default='')),
        )


def _to_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidSignalEvent(f"Invalid {name}: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidSignalEvent(f"Invalid {name}: {value!r}")


# =============================================================================
# Channels
# =============================================================================

@dataclass(frozen=True)
class EmailChannel:
    """Email delivery to a single address."""
    address: str
    verified: bool = False

    kind: ClassVar[ChannelKind] = ChannelKind.EMAIL

    def describe(self) -> str:
        local, _, domain = self.address.partition('@')
        return f"email:{local[:2]}***@{domain}"


@dataclass(frozen=True)
class DiscordChannel:
    """Discord incoming webhook."""
    webhook_url: str
    verified: bool = False

    kind: ClassVar[ChannelKind] = ChannelKind.DISCORD

    def describe(self) -> str:
        return "discord:webhook"


@dataclass(frozen=True)
class TelegramChannel:
    """Telegram bot posting to one chat."""
    bot_token: str
    chat_id: str
    verified: bool = False

    kind: ClassVar[ChannelKind] = ChannelKind.TELEGRAM

    def describe(self) -> str:
        return f"telegram:{self.chat_id}"


NotificationChannel = Union[EmailChannel, DiscordChannel, TelegramChannel]


def channel_from_dict(data: Dict[str, Any]) -> NotificationChannel:
    """
    Parse a channel definition.

    Format: {"kind": "discord", "webhook_url": "...", "verified": true}
    """
    if not isinstance(data, dict):
        raise ValueError(f"Channel definition must be an object, got {type(data).__name__}")
    kind = str(data.get('kind', '')).lower()
    verified = _to_bool(data.get('verified'), 'verified', False)

    if kind == ChannelKind.EMAIL.value:
        return EmailChannel(
            address=str(_pick(data, 'address', 'email', default='')),
            verified=verified,
        )
    if kind == ChannelKind.DISCORD.value:
        return DiscordChannel(
            webhook_url=str(_pick(data, 'webhook_url', 'webhookUrl', default='')),
            verified=verified,
        )
    if kind == ChannelKind.TELEGRAM.value:
        return TelegramChannel(
            bot_token=str(_pick(data, 'bot_token', 'botToken', default='')),
            chat_id=str(_pick(data, 'chat_id', 'chatId', default='')),
            verified=verified,
        )
    raise ValueError(f"Unknown channel kind: {kind!r}")


# =============================================================================
# Strategy configuration
# =============================================================================

@dataclass
class NotificationPreferences:
    """Which signal kinds the owner wants delivered externally."""
    entry_signals: bool = True
    exit_signals: bool = True
    stop_loss_alerts: bool = True
    take_profit_alerts: bool = True

    def allows(self, kind: SignalKind) -> bool:
        return {
            SignalKind.ENTRY: self.entry_signals,
            SignalKind.EXIT: self.exit_signals,
            SignalKind.STOP_LOSS: self.stop_loss_alerts,
            SignalKind.TAKE_PROFIT: self.take_profit_alerts,
        }[SignalKind(kind)]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'NotificationPreferences':
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"preferences must be an object, got {type(data).__name__}")
        return cls(**{
            name: _to_bool(data.get(name), name, True)
            for name in ('entry_signals', 'exit_signals', 'stop_loss_alerts', 'take_profit_alerts')
        })


@dataclass
class StrategyConfig:
    """
    Per-strategy notification settings handed in with each signal.

    Attributes:
        strategy_id: Strategy the settings belong to
        daily_signal_limit: External notifications allowed per day (0/None -> 5)
        signal_notifications_enabled: Manual on/off switch, independent of quota
        channels: Configured channels with their verified flags
        preferences: Per-kind opt-outs
    """
    strategy_id: str
    daily_signal_limit: Optional[int] = DEFAULT_DAILY_LIMIT
    signal_notifications_enabled: bool = True
    channels: List[NotificationChannel] = field(default_factory=list)
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)

    def __post_init__(self):
        if not self.daily_signal_limit:
            self.daily_signal_limit = DEFAULT_DAILY_LIMIT
        if int(self.daily_signal_limit) < 0:
            raise ValueError("daily_signal_limit must be positive")
        self.daily_signal_limit = int(self.daily_signal_limit)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StrategyConfig':
        channels = data.get('channels') or []
        if not isinstance(channels, list):
            raise ValueError("channels must be a list")
        return cls(
            strategy_id=str(_pick(data, 'strategy_id', 'strategyId', 'id', default='')),
            daily_signal_limit=_pick(data, 'daily_signal_limit', 'dailySignalLimit'),
            signal_notifications_enabled=_to_bool(
                _pick(data, 'signal_notifications_enabled', 'signalNotificationsEnabled'),
                'signal_notifications_enabled',
                True,
            ),
            channels=[channel_from_dict(c) for c in channels],
            preferences=NotificationPreferences.from_dict(data.get('preferences')),
        )


# =============================================================================
# Quota
# =============================================================================

@dataclass(frozen=True)
class QuotaUsage:
    """Quota widget view of one strategy-day."""
    count: int
    limit: int
    remaining: int
    is_limit_reached: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'limit': self.limit,
            'remaining': self.remaining,
            'is_limit_reached': self.is_limit_reached,
        }


@dataclass
class QuotaRecord:
    """Notifications sent for one (strategy_id, signal_date)."""
    strategy_id: str
    signal_date: date
    notification_count: int = 0
    limit: int = DEFAULT_DAILY_LIMIT

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.notification_count)

    @property
    def is_limit_reached(self) -> bool:
        return self.notification_count >= self.limit

    def to_usage(self) -> QuotaUsage:
        return QuotaUsage(
            count=self.notification_count,
            limit=self.limit,
            remaining=self.remaining,
            is_limit_reached=self.is_limit_reached,
        )


# =============================================================================
# Delivery
# =============================================================================

@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one channel send."""
    status: DeliveryStatus
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT

    @classmethod
    def sent(cls) -> 'DeliveryOutcome':
        return cls(DeliveryStatus.SENT)

    @classmethod
    def failed(cls, error_message: str) -> 'DeliveryOutcome':
        return cls(DeliveryStatus.FAILED, error_message)


@dataclass
class DeliveryLogEntry:
    """
    Append-only audit record of one (signal, channel) attempt.

    attempt_id is the dedup key: appending the same entry twice (retried
    logging) stores it once.
    """
    user_id: str
    signal_id: str
    channel_kind: ChannelKind
    status: DeliveryStatus
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'attempt_id': self.attempt_id,
            'user_id': self.user_id,
            'signal_id': self.signal_id,
            'channel_kind': ChannelKind(self.channel_kind).value,
            'status': DeliveryStatus(self.status).value,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ChannelDelivery:
    """One channel's outcome within a dispatch."""
    channel_kind: ChannelKind
    outcome: DeliveryOutcome
    logged: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'channel_kind': self.channel_kind.value,
            'status': self.outcome.status.value,
            'error_message': self.outcome.error_message,
            'logged': self.logged,
        }


@dataclass
class DispatchResult:
    """Aggregate result of one on_signal_generated call."""
    signal_id: str
    strategy_id: str
    outcome: DispatchOutcome = DispatchOutcome.NO_ELIGIBLE_CHANNELS
    states: List[DispatchState] = field(default_factory=lambda: [DispatchState.START])
    deliveries: List[ChannelDelivery] = field(default_factory=list)
    quota: Optional[QuotaUsage] = None
    signal_date: Optional[date] = None
    recorded: bool = True

    @property
    def notifications_sent(self) -> int:
        return sum(1 for d in self.deliveries if d.outcome.ok)

    @property
    def channels_attempted(self) -> int:
        return len(self.deliveries)

    @property
    def final_state(self) -> DispatchState:
        return self.states[-1]

    def transition(self, state: DispatchState) -> None:
        self.states.append(state)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'signal_id': self.signal_id,
            'strategy_id': self.strategy_id,
            'outcome': self.outcome.value,
            'states': [s.value for s in self.states],
            'recorded': self.recorded,
            'notifications_sent': self.notifications_sent,
            'channels_attempted': self.channels_attempted,
            'deliveries': [d.to_dict() for d in self.deliveries],
            'quota': self.quota.to_dict() if self.quota else None,
            'signal_date': self.signal_date.isoformat() if self.signal_date else None,
        }
