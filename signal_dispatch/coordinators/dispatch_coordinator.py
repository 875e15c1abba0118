"""
DispatchCoordinator - signal notification entry point

Turns one generated signal into zero or more external notifications.

Per dispatch:
START -> GATED -> ADMITTED | REJECTED -> DISPATCHED -> FINALIZED

- Gate: manual switch, per-kind preferences, tier and verified channels.
  Any of them failing finalizes directly (no sends, no increment)
- Admission: one quota check for the strategy-day (fails open)
- Dispatch: all eligible channels run concurrently, each outcome appended
  to the delivery log independently
- Finalize: exactly one quota increment if any channel was attempted,
  whatever the per-channel outcomes
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

from signal_dispatch.alerters import BaseAlerter, DiscordAlerter, EmailAlerter, TelegramAlerter
from signal_dispatch.audit_log import AuditLogger
from signal_dispatch.capability_gate import eligible_channels, kind_enabled
from signal_dispatch.config import NotificationConfig
from signal_dispatch.delivery_log import DeliveryLog
from signal_dispatch.errors import InvalidSignalEvent, LedgerUnavailable, LogAppendFailed
from signal_dispatch.models import (
    ChannelDelivery,
    ChannelKind,
    DeliveryLogEntry,
    DeliveryOutcome,
    DispatchOutcome,
    DispatchResult,
    DispatchState,
    NotificationChannel,
    QuotaRecord,
    QuotaUsage,
    SignalEvent,
    StrategyConfig,
    SubscriptionTier,
)
from signal_dispatch.quota_ledger import QuotaLedger
from signal_dispatch.utils.trading_day import SignalDayClock

logger = logging.getLogger(__name__)

DISPATCH_TIMEOUT_ERROR = 'dispatch timed out'


class DispatchCoordinator:
    """
    Orchestrates gating, quota admission, fan-out, logging and accounting.

    The ledger is the only mutable shared state; the coordinator itself
    keeps nothing between calls and is safe to share across threads.

    Args:
        ledger: QuotaLedger for per strategy-day counts
        delivery_log: DeliveryLog for per-channel audit entries
        alerters: Alerter per channel kind
        clock: Day-key clock (defaults to the configured timezone)
        config: NotificationConfig (defaults used when omitted)
        audit_logger: Optional AuditLogger for one structured line per dispatch

    Usage:
        coordinator = DispatchCoordinator.from_config(NotificationConfig.from_env())
        result = coordinator.on_signal_generated(signal, strategy, 'pro')
    """

    def __init__(
        self,
        ledger: QuotaLedger,
        delivery_log: DeliveryLog,
        alerters: Dict[ChannelKind, BaseAlerter],
        clock: Optional[SignalDayClock] = None,
        config: Optional[NotificationConfig] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._config = config or NotificationConfig()
        self._ledger = ledger
        self._delivery_log = delivery_log
        self._alerters = dict(alerters)
        self._clock = clock or SignalDayClock(self._config.quota.timezone)
        self._audit = audit_logger

    @classmethod
    def from_config(
        cls,
        config: NotificationConfig,
        audit_logger: Optional[AuditLogger] = None,
    ) -> 'DispatchCoordinator':
        """Build the ledger, delivery log and the three alerters from config."""
        channels = config.channels
        common = dict(
            timeout=channels.channel_timeout_seconds,
            retry_attempts=channels.retry_attempts,
            retry_delay=channels.retry_delay_seconds,
        )
        alerters: Dict[ChannelKind, BaseAlerter] = {
            ChannelKind.EMAIL: EmailAlerter(
                api_key=channels.email_api_key,
                from_address=channels.email_from_address,
                api_url=channels.email_api_url,
                **common,
            ),
            ChannelKind.DISCORD: DiscordAlerter(username=channels.discord_username, **common),
            ChannelKind.TELEGRAM: TelegramAlerter(**common),
        }
        clock = SignalDayClock(config.quota.timezone)

        return cls(
            ledger=QuotaLedger(
                config.quota.ledger_path,
                default_limit=config.quota.default_daily_limit,
                clock=clock,
            ),
            delivery_log=DeliveryLog(config.delivery_log.log_path),
            alerters=alerters,
            clock=clock,
            config=config,
            audit_logger=audit_logger,
        )

    @property
    def ledger(self) -> QuotaLedger:
        return self._ledger

    @property
    def delivery_log(self) -> DeliveryLog:
        return self._delivery_log

    # =========================================================================
    # Dispatch
    # =========================================================================

    def on_signal_generated(
        self,
        signal: SignalEvent,
        strategy: StrategyConfig,
        subscription_tier: Union[str, SubscriptionTier, None],
    ) -> DispatchResult:
        """
        Dispatch one signal.

        Args:
            signal: The produced signal
            strategy: Owner's settings for the signal's strategy
            subscription_tier: Owner's tier ('free', 'pro', 'premium')

        Returns:
            DispatchResult with visited states, per-channel outcomes and the
            final quota usage

        Raises:
            InvalidSignalEvent: malformed input, before any channel is attempted
        """
        if not isinstance(signal, SignalEvent):
            raise InvalidSignalEvent(f"Expected a SignalEvent, got {type(signal).__name__}")
        if not isinstance(strategy, StrategyConfig):
            raise InvalidSignalEvent("A StrategyConfig is required to dispatch a signal")
        if strategy.strategy_id != signal.strategy_id:
            raise InvalidSignalEvent(
                f"Strategy config {strategy.strategy_id!r} does not match signal "
                f"strategy {signal.strategy_id!r}"
            )

        # Computed once so admission and increment agree across midnight
        day = self._clock.today()
        limit = strategy.daily_signal_limit or self._config.quota.default_daily_limit
        result = DispatchResult(
            signal_id=signal.signal_id,
            strategy_id=signal.strategy_id,
            signal_date=day,
        )

        # --- START -> GATED ---------------------------------------------------
        if not strategy.signal_notifications_enabled:
            logger.info(f"Notifications disabled for {signal.strategy_id}, recorded only")
            return self._finalize(signal, result, DispatchOutcome.NOTIFICATIONS_DISABLED)

        if not kind_enabled(strategy.preferences, signal.signal_kind):
            logger.info(
                f"{signal.signal_kind.value} notifications disabled for {signal.strategy_id}"
            )
            return self._finalize(signal, result, DispatchOutcome.KIND_DISABLED)

        channels = eligible_channels(strategy, subscription_tier, strategy.channels)
        if not channels:
            logger.info(
                f"No eligible channels for {signal.strategy_id} "
                f"(tier={SubscriptionTier.parse(subscription_tier).value})"
            )
            return self._finalize(signal, result, DispatchOutcome.NO_ELIGIBLE_CHANNELS)

        result.transition(DispatchState.GATED)

        # --- GATED -> ADMITTED | REJECTED --------------------------------------
        admitted, reservation = self._admit(signal.strategy_id, day, limit)
        if not admitted:
            result.transition(DispatchState.REJECTED)
            result.quota = self._usage(signal.strategy_id, day, limit)
            logger.info(
                f"Quota exhausted for {signal.strategy_id} on {day} "
                f"(limit {limit}), {signal.signal_id} recorded, not notified"
            )
            return self._finalize(signal, result, DispatchOutcome.QUOTA_EXHAUSTED)

        result.transition(DispatchState.ADMITTED)

        # --- ADMITTED -> DISPATCHED ---------------------------------------------
        outcomes = self._fan_out(signal, channels)
        result.transition(DispatchState.DISPATCHED)

        for channel, outcome in outcomes:
            logged = self._record_delivery(signal, channel, outcome)
            result.deliveries.append(ChannelDelivery(channel.kind, outcome, logged))

        # --- DISPATCHED -> FINALIZED --------------------------------------------
        if result.deliveries:
            record = reservation or self._increment(signal.strategy_id, day, limit)
            if record is not None:
                result.quota = record.to_usage()
            else:
                result.quota = self._usage(signal.strategy_id, day, limit)

        logger.info(
            f"Dispatched {signal.signal_id}: {result.notifications_sent}/"
            f"{result.channels_attempted} channel(s) sent"
        )
        return self._finalize(signal, result, DispatchOutcome.NOTIFIED)

    def _finalize(
        self,
        signal: SignalEvent,
        result: DispatchResult,
        outcome: DispatchOutcome,
    ) -> DispatchResult:
        result.outcome = outcome
        result.transition(DispatchState.FINALIZED)
        if self._audit is not None:
            self._audit.log_dispatch(signal, result)
        return result

    def _admit(self, strategy_id: str, day: date, limit: int) -> Tuple[bool, Optional[QuotaRecord]]:
        """
        Admission decision.

        Returns:
            (admitted, reservation). reservation is the already-incremented
            record in strict mode, None otherwise.
        """
        strict = self._config.dispatch.strict_admission
        try:
            if not strict:
                return self._ledger.check_admission(strategy_id, day, limit, fail_open=False), None
            reservation = self._ledger.try_reserve(strategy_id, day, limit)
        except LedgerUnavailable as e:
            # Fail open, the increment after sends is attempted as usual
            self._ledger_failure('reserve' if strict else 'admission', strategy_id, e)
            return True, None
        return reservation is not None, reservation

    def _fan_out(
        self,
        signal: SignalEvent,
        channels: List[NotificationChannel],
    ) -> List[Tuple[NotificationChannel, DeliveryOutcome]]:
        """
        Send to every channel concurrently and join on all of them.

        Channels still running at the dispatch timeout are reported as
        failed; results come back in channel order.
        """
        timeout = self._config.dispatch.dispatch_timeout_seconds
        executor = ThreadPoolExecutor(
            max_workers=len(channels),
            thread_name_prefix='signal-dispatch',
        )
        try:
            futures = [executor.submit(self._send_one, channel, signal) for channel in channels]
            done, _ = wait(futures, timeout=timeout)

            outcomes = []
            for channel, future in zip(channels, futures):
                if future in done:
                    outcome = future.result()
                else:
                    future.cancel()
                    logger.warning(
                        f"{channel.kind.value} delivery for {signal.signal_id} "
                        f"still running after {timeout}s"
                    )
                    outcome = DeliveryOutcome.failed(DISPATCH_TIMEOUT_ERROR)
                outcomes.append((channel, outcome))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return outcomes

    def _send_one(self, channel: NotificationChannel, signal: SignalEvent) -> DeliveryOutcome:
        alerter = self._alerters.get(channel.kind)
        if alerter is None:
            return DeliveryOutcome.failed(f"No alerter configured for {channel.kind.value}")
        try:
            return alerter.send(channel, signal)
        except Exception as e:
            logger.exception(f"Alerter {alerter.name} raised for {signal.signal_id}")
            return DeliveryOutcome.failed(f"Unexpected {alerter.name} error: {e}")

    def _record_delivery(
        self,
        signal: SignalEvent,
        channel: NotificationChannel,
        outcome: DeliveryOutcome,
    ) -> bool:
        """
        Append one delivery entry, retrying the write (never the send).

        Returns:
            True if the entry is in the log
        """
        entry = DeliveryLogEntry(
            user_id=signal.user_id,
            signal_id=signal.signal_id,
            channel_kind=channel.kind,
            status=outcome.status,
            error_message=outcome.error_message,
        )
        attempts = max(1, self._config.delivery_log.max_append_attempts)

        for attempt in range(attempts):
            if self._delivery_log.append(entry):
                return True
            if attempt < attempts - 1:
                time.sleep(self._config.delivery_log.retry_delay_seconds)

        error = LogAppendFailed(
            f"Delivery log append failed after {attempts} attempts "
            f"({channel.kind.value} / {signal.signal_id})"
        )
        logger.error(str(error))
        return False

    def _increment(self, strategy_id: str, day: date, limit: int) -> Optional[QuotaRecord]:
        try:
            return self._ledger.increment(strategy_id, day, limit)
        except LedgerUnavailable as e:
            # Sends already happened and are never retracted
            self._ledger_failure('increment', strategy_id, e)
            return None

    def _usage(self, strategy_id: str, day: date, limit: int) -> Optional[QuotaUsage]:
        try:
            return self._ledger.get_usage(strategy_id, day, limit).to_usage()
        except LedgerUnavailable as e:
            logger.warning(f"Quota usage unavailable for {strategy_id}: {e}")
            return None

    def _ledger_failure(self, operation: str, strategy_id: str, error: Exception) -> None:
        logger.error(f"Quota ledger {operation} failed for {strategy_id}: {error}")
        if self._audit is not None:
            self._audit.log_ledger_failure(operation, strategy_id, error)

    # =========================================================================
    # Queries and maintenance
    # =========================================================================

    def get_usage(self, strategy_id: str, limit: Optional[int] = None) -> QuotaUsage:
        """
        Today's quota usage for a strategy.

        Raises:
            LedgerUnavailable: store error
        """
        day = self._clock.today()
        return self._ledger.get_usage(
            strategy_id, day, limit or self._config.quota.default_daily_limit
        ).to_usage()

    def list_delivery_logs(self, user_id: str, limit: int = 50) -> List[DeliveryLogEntry]:
        """Delivery log entries for a user, newest first."""
        return self._delivery_log.list_for_user(user_id, limit)

    def test_channel(self, channel: NotificationChannel) -> bool:
        """
        Run the channel's connection test (out-of-band verification).

        Never touches the quota ledger or the delivery log.
        """
        alerter = self._alerters.get(channel.kind)
        if alerter is None:
            logger.error(f"No alerter configured for {channel.kind.value}")
            return False
        return alerter.test_connection(channel)

    def sweep(self) -> int:
        """
        Remove quota records older than the retention window.

        Returns:
            Number of records removed

        Raises:
            LedgerUnavailable: store error
        """
        cutoff = self._clock.retention_cutoff(self._config.quota.retention_days)
        removed = self._ledger.sweep(cutoff)
        if self._audit is not None:
            self._audit.log_sweep(cutoff, removed)
        return removed
