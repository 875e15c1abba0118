"""
Delivery Log

Append-only audit trail of every delivery attempt, one row per
(signal, channel) attempt, whether it was sent or failed.

Key Features:
1. SQLite persistence with an auto-increment id
2. Idempotent appends: attempt_id is UNIQUE, so a retried append of the
   same entry stores one row
3. Newest-first queries for the notification-history view

Entries are never updated or deleted by the dispatch path.
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import List

from signal_dispatch.models import ChannelKind, DeliveryLogEntry, DeliveryStatus

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS delivery_logs (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    attempt_id     TEXT    NOT NULL UNIQUE,
    user_id        TEXT    NOT NULL,
    signal_id      TEXT    NOT NULL,
    channel_kind   TEXT    NOT NULL,
    status         TEXT    NOT NULL,
    error_message  TEXT,
    created_at     TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_delivery_logs_user ON delivery_logs(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_delivery_logs_signal ON delivery_logs(signal_id);
"""

MAX_LIST_LIMIT = 500


class DeliveryLog:
    """
    Append-only store of DeliveryLogEntry rows.

    append() reports success instead of raising so the caller can retry
    the log write (never the send).

    Usage:
        log = DeliveryLog('data/notifications/delivery_log.db')
        log.append(entry)
        recent = log.list_for_user('user-1', limit=20)
    """

    def __init__(self, db_path: str = 'data/notifications/delivery_log.db', busy_timeout: float = 5.0):
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._conn()
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _from_row(row: sqlite3.Row) -> DeliveryLogEntry:
        return DeliveryLogEntry(
            id=row['id'],
            attempt_id=row['attempt_id'],
            user_id=row['user_id'],
            signal_id=row['signal_id'],
            channel_kind=ChannelKind(row['channel_kind']),
            status=DeliveryStatus(row['status']),
            error_message=row['error_message'],
            created_at=datetime.fromisoformat(row['created_at']),
        )

    def append(self, entry: DeliveryLogEntry) -> bool:
        """
        Append one entry.

        Returns:
            True if the entry is stored (including when an entry with the
            same attempt_id already was), False on store error
        """
        try:
            conn = self._conn()
            try:
                with conn:
                    cursor = conn.execute(
                        """INSERT OR IGNORE INTO delivery_logs
                               (attempt_id, user_id, signal_id, channel_kind, status,
                                error_message, created_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?)""",
                        (
                            entry.attempt_id,
                            entry.user_id,
                            entry.signal_id,
                            ChannelKind(entry.channel_kind).value,
                            DeliveryStatus(entry.status).value,
                            entry.error_message,
                            entry.created_at.isoformat(),
                        ),
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(
                f"Delivery log append failed ({entry.channel_kind} / {entry.signal_id}): {e}"
            )
            return False

        if cursor.rowcount == 0:
            logger.debug(f"Delivery log entry already stored: {entry.attempt_id}")
        return True

    def list_for_user(self, user_id: str, limit: int = 50) -> List[DeliveryLogEntry]:
        """Entries for a user, newest first."""
        limit = max(1, min(int(limit), MAX_LIST_LIMIT))
        conn = self._conn()
        try:
            rows = conn.execute(
                "SELECT * FROM delivery_logs WHERE user_id=? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        finally:
            conn.close()
        return [self._from_row(r) for r in rows]

    def list_for_signal(self, signal_id: str) -> List[DeliveryLogEntry]:
        """Entries for one signal in append order."""
        conn = self._conn()
        try:
            rows = conn.execute(
                "SELECT * FROM delivery_logs WHERE signal_id=? ORDER BY id",
                (signal_id,),
            ).fetchall()
        finally:
            conn.close()
        return [self._from_row(r) for r in rows]

    def count(self) -> int:
        conn = self._conn()
        try:
            return conn.execute("SELECT COUNT(*) FROM delivery_logs").fetchone()[0]
        finally:
            conn.close()
