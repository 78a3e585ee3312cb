"""Durable outbox for event messages awaiting delivery to the paired device."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from ..config import Config, OUTBOX_WARNING_SIZE

__all__ = ["Outbox", "OutboxMessage"]

logger = logging.getLogger(__name__)


@dataclass
class OutboxMessage:
    """A message waiting in the outbox."""

    id: int
    payload: dict
    created_at: datetime
    retry_count: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "OutboxMessage":
        return cls(
            id=row["id"],
            payload=json.loads(row["payload"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            retry_count=row["retry_count"],
        )


class Outbox:
    """SQLite-backed outbox. Survives restarts until delivery is confirmed.

    Messages carrying the same ``message_key`` are stored once, so
    re-sending a session before it was delivered does not duplicate it.
    Nothing leaves the outbox except through ``remove`` after delivery.
    """

    def __init__(self, db_path: Optional[Path] = None, warning_size: int = OUTBOX_WARNING_SIZE):
        """Initialize the outbox.

        Args:
            db_path: Path to SQLite database file
            warning_size: Pending count above which enqueue logs a warning
        """
        if db_path is None:
            db_path = Config.get_data_dir() / "outbox.db"

        self.db_path = db_path
        self.warning_size = warning_size
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            self._local.connection = sqlite3.connect(str(self.db_path))
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS outbox (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    message_key TEXT UNIQUE,
                    payload TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    retry_count INTEGER DEFAULT 0
                )
                """
            )

    def enqueue(self, payloads: list[dict]) -> int:
        """Add messages to the outbox.

        Args:
            payloads: Message payloads; an ``id`` field is used as the message key

        Returns:
            Number of messages added (duplicates of pending keys are skipped)
        """
        if not payloads:
            return 0

        now = datetime.now(timezone.utc).isoformat()
        with self._cursor() as cursor:
            cursor.executemany(
                """
                INSERT OR IGNORE INTO outbox (message_key, payload, created_at)
                VALUES (?, ?, ?)
                """,
                [(p.get("id"), json.dumps(p), now) for p in payloads],
            )
            added = cursor.rowcount

        pending = self.size()
        if added and pending > self.warning_size:
            logger.warning(
                f"Outbox holds {pending} undelivered messages (warning size {self.warning_size})"
            )
        return added

    def dequeue(self, batch_size: int = 50) -> list[OutboxMessage]:
        """Oldest pending messages first, without removing them."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, payload, created_at, retry_count
                FROM outbox
                ORDER BY id ASC
                LIMIT ?
                """,
                (batch_size,),
            )
            return [OutboxMessage.from_row(row) for row in cursor.fetchall()]

    def remove(self, message_ids: list[int]) -> int:
        """Remove delivered messages."""
        if not message_ids:
            return 0

        with self._cursor() as cursor:
            placeholders = ",".join("?" * len(message_ids))
            cursor.execute(f"DELETE FROM outbox WHERE id IN ({placeholders})", message_ids)
            return cursor.rowcount

    def increment_retry(self, message_ids: list[int]) -> None:
        if not message_ids:
            return

        with self._cursor() as cursor:
            placeholders = ",".join("?" * len(message_ids))
            cursor.execute(
                f"UPDATE outbox SET retry_count = retry_count + 1 WHERE id IN ({placeholders})",
                message_ids,
            )

    def count_stalled(self, min_retries: int) -> int:
        """Messages that have failed delivery at least ``min_retries`` times."""
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM outbox WHERE retry_count >= ?", (min_retries,))
            return cursor.fetchone()[0]

    def size(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM outbox")
            return cursor.fetchone()[0]

    def is_empty(self) -> bool:
        return self.size() == 0

    def clear(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM outbox")
            return cursor.rowcount

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection
