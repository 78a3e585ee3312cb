"""Durable storage port for the ledger, with a SQLite implementation."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Protocol, runtime_checkable

from . import codec
from .config import Config
from .models import Achievement, Challenge, Goal, Session, StreakState

__all__ = ["PersistencePort", "PersistenceError", "SQLitePersistence"]

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """A storage call failed; nothing from that call was committed."""

    pass


@runtime_checkable
class PersistencePort(Protocol):
    """CRUD surface the ledger needs from durable storage.

    Every call is atomic on its own.
    """

    def create_session(self, session: Session) -> Session: ...

    def update_session(self, session: Session) -> None: ...

    def fetch_sessions(self) -> list[Session]: ...

    def delete_session(self, session_id: str) -> bool: ...

    def clear_sessions(self) -> int: ...

    def save_goal(self, goal: Goal) -> None: ...

    def fetch_goals(self) -> list[Goal]: ...

    def delete_goal(self, goal_id: str) -> bool: ...

    def save_achievement(self, achievement: Achievement) -> None: ...

    def fetch_achievements(self) -> list[Achievement]: ...

    def save_challenge(self, challenge: Challenge) -> None: ...

    def fetch_challenges(self) -> list[Challenge]: ...

    def delete_challenge(self, challenge_id: str) -> bool: ...

    def save_streak(self, state: StreakState) -> None: ...

    def load_streak(self) -> Optional[StreakState]: ...


class SQLitePersistence:
    """SQLite-backed ledger storage.

    Records are stored as JSON documents keyed by id; sessions also keep
    their timestamp in a column for ordering.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Defaults to data dir.
        """
        if db_path is None:
            db_path = Config.get_ledger_path()

        self.db_path = db_path
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
        """Cursor whose work is committed as one transaction.

        sqlite3 errors surface as PersistenceError after rollback.
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_timestamp ON sessions(timestamp)"
            )
            for table in ("goals", "achievements", "challenges"):
                cursor.execute(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        data TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS streak (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    # Sessions

    def create_session(self, session: Session) -> Session:
        with self._cursor() as cursor:
            cursor.execute(
                "INSERT INTO sessions (id, timestamp, data) VALUES (?, ?, ?)",
                (
                    session.id,
                    session.timestamp.isoformat(),
                    json.dumps(codec.session_to_dict(session)),
                ),
            )
        return session

    def update_session(self, session: Session) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE sessions SET timestamp = ?, data = ? WHERE id = ?",
                (
                    session.timestamp.isoformat(),
                    json.dumps(codec.session_to_dict(session)),
                    session.id,
                ),
            )

    def fetch_sessions(self) -> list[Session]:
        """All sessions, most recent first. Unreadable rows are skipped."""
        with self._cursor() as cursor:
            cursor.execute("SELECT id, data FROM sessions ORDER BY timestamp DESC")
            rows = cursor.fetchall()

        sessions = []
        for row in rows:
            try:
                sessions.append(codec.session_from_dict(json.loads(row["data"])))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable session {row['id']}: {e}")
        return sessions

    def delete_session(self, session_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            return cursor.rowcount > 0

    def clear_sessions(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM sessions")
            return cursor.rowcount

    # Goals, achievements, challenges

    def _upsert(self, table: str, record_id: str, data: dict) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO {table} (id, data, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (record_id, json.dumps(data), now),
            )

    def _fetch(self, table: str, decode) -> list:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT id, data FROM {table} ORDER BY rowid ASC")
            rows = cursor.fetchall()

        records = []
        for row in rows:
            try:
                records.append(decode(json.loads(row["data"])))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable {table} row {row['id']}: {e}")
        return records

    def _delete(self, table: str, record_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    def save_goal(self, goal: Goal) -> None:
        self._upsert("goals", goal.id, codec.goal_to_dict(goal))

    def fetch_goals(self) -> list[Goal]:
        return self._fetch("goals", codec.goal_from_dict)

    def delete_goal(self, goal_id: str) -> bool:
        return self._delete("goals", goal_id)

    def save_achievement(self, achievement: Achievement) -> None:
        self._upsert("achievements", achievement.key, codec.achievement_to_dict(achievement))

    def fetch_achievements(self) -> list[Achievement]:
        return self._fetch("achievements", codec.achievement_from_dict)

    def save_challenge(self, challenge: Challenge) -> None:
        self._upsert("challenges", challenge.id, codec.challenge_to_dict(challenge))

    def fetch_challenges(self) -> list[Challenge]:
        return self._fetch("challenges", codec.challenge_from_dict)

    def delete_challenge(self, challenge_id: str) -> bool:
        return self._delete("challenges", challenge_id)

    # Streak

    def save_streak(self, state: StreakState) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO streak (id, data, updated_at)
                VALUES (1, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (json.dumps(codec.streak_to_dict(state)), now),
            )

    def load_streak(self) -> Optional[StreakState]:
        with self._cursor() as cursor:
            cursor.execute("SELECT data FROM streak WHERE id = 1")
            row = cursor.fetchone()
            if row:
                return codec.streak_from_dict(json.loads(row["data"]))
            return None

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection
