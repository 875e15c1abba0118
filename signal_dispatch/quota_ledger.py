"""
Quota Ledger

Durable per strategy-day notification counter backing the daily cap on
external notifications.

Key Features:
1. SQLite persistence (survives restarts, shared by every process on the host)
2. Atomic create-or-increment via INSERT ... ON CONFLICT DO UPDATE
3. Check-only admission queries that never persist a zero record
4. Optional single-statement check-and-increment (try_reserve)
5. Retention sweep that always keeps yesterday

Failure policy:
- check_admission FAILS OPEN: if the store cannot be read the signal is
  admitted. Dropping a real trading signal is worse than exceeding the cap.
- increment/get_usage/sweep/try_reserve raise LedgerUnavailable.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from signal_dispatch.errors import LedgerUnavailable
from signal_dispatch.models import DEFAULT_DAILY_LIMIT, QuotaRecord
from signal_dispatch.utils.trading_day import SignalDayClock

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS quota_records (
    strategy_id         TEXT    NOT NULL,
    signal_date         TEXT    NOT NULL,
    notification_count  INTEGER NOT NULL DEFAULT 0 CHECK (notification_count >= 0),
    daily_limit         INTEGER,
    updated_at          TEXT    NOT NULL,
    PRIMARY KEY (strategy_id, signal_date)
);
CREATE INDEX IF NOT EXISTS idx_quota_records_date ON quota_records(signal_date);
"""


class QuotaLedger:
    """
    Per (strategy_id, signal_date) notification counts.

    Thread-safe and multi-process safe: every write runs in a
    BEGIN IMMEDIATE transaction, and writers inside one process are
    additionally serialized by a lock.

    Usage:
        ledger = QuotaLedger('data/notifications/quota.db')
        if ledger.check_admission('strat-1', day, limit=5):
            ...send...
            record = ledger.increment('strat-1', day, limit=5)
    """

    def __init__(
        self,
        db_path: str = 'data/notifications/quota.db',
        default_limit: int = DEFAULT_DAILY_LIMIT,
        busy_timeout: float = 5.0,
        clock: Optional[SignalDayClock] = None,
    ):
        """
        Initialize ledger and create the schema if needed.

        Args:
            db_path: SQLite database file
            default_limit: Limit reported when neither caller nor record has one
            busy_timeout: Seconds to wait on a locked database
            clock: Day-key clock used when get_usage is called without a day
        """
        self.db_path = str(db_path)
        self.default_limit = default_limit
        self.busy_timeout = busy_timeout
        self.clock = clock or SignalDayClock()
        self._lock = threading.Lock()

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = self._conn()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise LedgerUnavailable(f"Cannot initialize quota ledger at {self.db_path}: {e}") from e

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._conn()
        try:
            conn.execute('BEGIN IMMEDIATE')
            try:
                yield conn
            except BaseException:
                conn.execute('ROLLBACK')
                raise
            conn.execute('COMMIT')
        finally:
            conn.close()

    def _fetch(self, conn: sqlite3.Connection, strategy_id: str, day: date) -> Optional[sqlite3.Row]:
        return conn.execute(
            "SELECT * FROM quota_records WHERE strategy_id=? AND signal_date=?",
            (strategy_id, day.isoformat()),
        ).fetchone()

    def _to_record(
        self,
        strategy_id: str,
        day: date,
        row: Optional[sqlite3.Row],
        limit: Optional[int],
    ) -> QuotaRecord:
        stored_limit = row['daily_limit'] if row is not None else None
        return QuotaRecord(
            strategy_id=strategy_id,
            signal_date=day,
            notification_count=row['notification_count'] if row is not None else 0,
            limit=limit or stored_limit or self.default_limit,
        )

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def check_admission(self, strategy_id: str, day: date, limit: int, fail_open: bool = True) -> bool:
        """
        Advisory pre-check: True if count < limit for the strategy-day.

        A missing record reads as zero and is not created. Fails open
        (returns True) if the store is unreachable, unless fail_open is
        False, in which case LedgerUnavailable propagates to the caller.
        """
        try:
            record = self.get_usage(strategy_id, day, limit)
        except LedgerUnavailable as e:
            if not fail_open:
                raise
            logger.warning(
                f"Quota ledger unavailable, admitting {strategy_id} ({day}) fail-open: {e}"
            )
            return True
        return record.notification_count < limit

    def increment(self, strategy_id: str, day: date, limit: Optional[int] = None) -> QuotaRecord:
        """
        Atomically add exactly one to the strategy-day count.

        Creates the record on first use. Concurrent callers on the same key
        never lose updates.

        Returns:
            Post-increment QuotaRecord

        Raises:
            LedgerUnavailable: store error (the caller must not roll back sends)
        """
        try:
            with self._lock, self._transaction() as conn:
                conn.execute(
                    """INSERT INTO quota_records
                           (strategy_id, signal_date, notification_count, daily_limit, updated_at)
                       VALUES (?, ?, 1, ?, ?)
                       ON CONFLICT(strategy_id, signal_date) DO UPDATE SET
                           notification_count = notification_count + 1,
                           daily_limit = COALESCE(excluded.daily_limit, daily_limit),
                           updated_at = excluded.updated_at""",
                    (strategy_id, day.isoformat(), limit, self._now()),
                )
                row = self._fetch(conn, strategy_id, day)
        except sqlite3.Error as e:
            raise LedgerUnavailable(f"Quota increment failed for {strategy_id} ({day}): {e}") from e

        record = self._to_record(strategy_id, day, row, limit)
        logger.debug(
            f"Quota incremented: {strategy_id} {day} -> "
            f"{record.notification_count}/{record.limit}"
        )
        return record

    def try_reserve(self, strategy_id: str, day: date, limit: int) -> Optional[QuotaRecord]:
        """
        Check-and-increment in one transaction.

        Returns the post-increment record, or None if the quota is already
        exhausted. This is the strict alternative to check_admission followed
        by increment.

        Raises:
            LedgerUnavailable: store error
        """
        try:
            with self._lock, self._transaction() as conn:
                conn.execute(
                    """INSERT OR IGNORE INTO quota_records
                           (strategy_id, signal_date, notification_count, daily_limit, updated_at)
                       VALUES (?, ?, 0, ?, ?)""",
                    (strategy_id, day.isoformat(), limit, self._now()),
                )
                cursor = conn.execute(
                    """UPDATE quota_records SET
                           notification_count = notification_count + 1,
                           daily_limit = ?,
                           updated_at = ?
                       WHERE strategy_id=? AND signal_date=? AND notification_count < ?""",
                    (limit, self._now(), strategy_id, day.isoformat(), limit),
                )
                reserved = cursor.rowcount == 1
                row = self._fetch(conn, strategy_id, day)
        except sqlite3.Error as e:
            raise LedgerUnavailable(f"Quota reservation failed for {strategy_id} ({day}): {e}") from e

        if not reserved:
            return None
        return self._to_record(strategy_id, day, row, limit)

    def get_usage(
        self,
        strategy_id: str,
        day: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> QuotaRecord:
        """
        Read-only snapshot of a strategy-day (zero if no record exists).

        day defaults to today in the ledger clock's timezone.

        Raises:
            LedgerUnavailable: store error
        """
        if day is None:
            day = self.clock.today()
        try:
            conn = self._conn()
            try:
                row = self._fetch(conn, strategy_id, day)
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise LedgerUnavailable(f"Quota read failed for {strategy_id} ({day}): {e}") from e
        return self._to_record(strategy_id, day, row, limit)

    def sweep(self, retain_since: date) -> int:
        """
        Delete records strictly older than retain_since.

        Idempotent. Returns the number of records removed.

        Raises:
            LedgerUnavailable: store error
        """
        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM quota_records WHERE signal_date < ?",
                    (retain_since.isoformat(),),
                )
                removed = cursor.rowcount
        except sqlite3.Error as e:
            raise LedgerUnavailable(f"Quota sweep failed: {e}") from e

        logger.info(f"Quota sweep removed {removed} record(s) older than {retain_since}")
        return removed
