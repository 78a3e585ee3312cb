"""Session store - the canonical session collection and its aggregates."""

import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from .catalog import SESSIONS_PER_CONSISTENT_WEEK
from .events import EventBus, SessionCommitted, SessionDeleted, SessionUpdated
from .models import (
    InvalidSession,
    Session,
    SessionType,
    Statistics,
    TemperatureUnit,
    local_day,
    month_start_for,
    week_start_for,
)
from .persistence import PersistenceError, PersistencePort
from .progress import ProgressEngine
from .streaks import StreakCalculator

__all__ = ["SessionStore"]

logger = logging.getLogger(__name__)

EARLY_BIRD_HOUR = 7
NIGHT_OWL_HOUR = 21
EXTREME_COLD_F = 40.0
EXTREME_COLD_C = 5.0


class SessionStore:
    """Holds sessions most-recent-first and drives the commit chain.

    ``add`` is the single entry point for new sessions, local or remote.
    Streak and progress updates run synchronously inside it, in that
    order, before it returns.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        streaks: StreakCalculator,
        progress: ProgressEngine,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = datetime.now,
        first_weekday: int = 0,
        temperature_unit: TemperatureUnit = TemperatureUnit.FAHRENHEIT,
    ):
        self._persistence = persistence
        self._streaks = streaks
        self._progress = progress
        self._bus = bus
        self._clock = clock
        self._first_weekday = first_weekday
        self._temperature_unit = temperature_unit
        self._sessions: list[Session] = []
        self._ids: set[str] = set()

    def load(self) -> None:
        """Populate memory from durable storage."""
        sessions = self._persistence.fetch_sessions()
        sessions.sort(key=lambda s: s.timestamp, reverse=True)
        self._sessions = sessions
        self._ids = {s.id for s in sessions}
        logger.info(f"Loaded {len(sessions)} sessions")

    # -- mutations ----------------------------------------------------------

    def add(self, session: Session, remote: bool = False) -> Session:
        """Validate, store and commit a session.

        Raises:
            InvalidSession: bad duration, type or heart rate, or a reused id
        """
        session.validate()
        if session.id in self._ids:
            raise InvalidSession(f"Session {session.id} already exists")

        self._sessions.insert(0, session)
        self._ids.add(session.id)

        try:
            self._persistence.create_session(session)
        except PersistenceError as e:
            logger.error(f"Failed to persist session {session.id}: {e}")

        streak = self._streaks.record_session(session.day)
        self._progress.on_session_committed(session, self.statistics(), streak)

        logger.info(
            f"Committed {session.type.display_name} session {session.id} "
            f"({session.duration_formatted}{', remote' if remote else ''})"
        )
        if self._bus is not None:
            self._bus.publish(SessionCommitted(session, remote=remote))
        return session

    def delete(self, session_id: str) -> bool:
        """Remove a session. Unknown ids are logged and ignored.

        Streaks and unlocked achievements are left as they are.
        """
        if session_id not in self._ids:
            logger.info(f"Session {session_id} not found, nothing to delete")
            return False

        self._sessions = [s for s in self._sessions if s.id != session_id]
        self._ids.discard(session_id)

        try:
            self._persistence.delete_session(session_id)
        except PersistenceError as e:
            logger.error(f"Failed to delete session {session_id} from storage: {e}")

        if self._bus is not None:
            self._bus.publish(SessionDeleted(session_id))
        return True

    def update(self, session: Session) -> bool:
        """Replace a session's metadata without recomputing progress."""
        session.validate()
        for i, existing in enumerate(self._sessions):
            if existing.id == session.id:
                self._sessions[i] = session
                break
        else:
            logger.warning(f"Cannot update unknown session {session.id}")
            return False

        try:
            self._persistence.update_session(session)
        except PersistenceError as e:
            logger.error(f"Failed to persist update for session {session.id}: {e}")

        if self._bus is not None:
            self._bus.publish(SessionUpdated(session))
        return True

    def reset(self) -> None:
        """Drop every session."""
        self._sessions = []
        self._ids = set()
        try:
            self._persistence.clear_sessions()
        except PersistenceError as e:
            logger.error(f"Failed to clear stored sessions: {e}")

    # -- queries ------------------------------------------------------------

    def all(self) -> list[Session]:
        return list(self._sessions)

    def get(self, session_id: str) -> Optional[Session]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def contains(self, session_id: str) -> bool:
        return session_id in self._ids

    def __len__(self) -> int:
        return len(self._sessions)

    def for_date(self, day: date) -> list[Session]:
        return [s for s in self._sessions if s.day == day]

    def for_week(self, containing: date) -> list[Session]:
        start = week_start_for(containing, self._first_weekday)
        end = start + timedelta(days=7)
        return [s for s in self._sessions if start <= s.day < end]

    def for_month(self, containing: date) -> list[Session]:
        start = month_start_for(containing)
        return [
            s for s in self._sessions
            if s.day.year == start.year and s.day.month == start.month
        ]

    def of_type(self, session_type: SessionType) -> list[Session]:
        return [s for s in self._sessions if s.type is session_type]

    def today(self) -> list[Session]:
        return self.for_date(local_day(self._clock()))

    def days_with_sessions(self, month: date) -> dict[date, list[Session]]:
        """Sessions of a month grouped by calendar day."""
        result: dict[date, list[Session]] = {}
        for session in self.for_month(month):
            result.setdefault(session.day, []).append(session)
        return result

    def statistics(self) -> Statistics:
        """Aggregate the whole collection. Always computed fresh."""
        stats = Statistics(temperature_unit=self._temperature_unit)
        sessions = self._sessions
        if not sessions:
            return stats

        today = local_day(self._clock())
        week_start = week_start_for(today, self._first_weekday)
        week_end = week_start + timedelta(days=7)
        temperatures = []
        week_counts: Counter = Counter()

        for session in sessions:
            day = session.day
            stats.total_duration += session.duration
            if session.type is SessionType.COLD_PLUNGE:
                stats.total_cold_sessions += 1
                stats.cold_minutes += session.minutes
            else:
                stats.total_sauna_sessions += 1
                stats.sauna_minutes += session.minutes

            if week_start <= day < week_end:
                stats.sessions_this_week += 1
            if day.year == today.year and day.month == today.month:
                stats.sessions_this_month += 1

            # Timestamps are naive local time, so this is the local hour
            hour = session.timestamp.hour
            if hour < EARLY_BIRD_HOUR:
                stats.early_sessions += 1
            elif hour >= NIGHT_OWL_HOUR:
                stats.late_sessions += 1

            if session.temperature is not None:
                temperatures.append(session.temperature.to(self._temperature_unit))
                if session.type is SessionType.COLD_PLUNGE and _is_extreme_cold(session):
                    stats.extreme_cold_sessions += 1

            week_counts[week_start_for(day, self._first_weekday)] += 1

        stats.total_sessions = len(sessions)
        stats.average_duration = stats.total_duration / stats.total_sessions
        if temperatures:
            stats.average_temperature = sum(temperatures) / len(temperatures)
        stats.consistent_weeks = sum(
            1 for count in week_counts.values() if count >= SESSIONS_PER_CONSISTENT_WEEK
        )
        return stats


def _is_extreme_cold(session: Session) -> bool:
    temperature = session.temperature
    if temperature.unit is TemperatureUnit.CELSIUS:
        return temperature.value < EXTREME_COLD_C
    return temperature.value < EXTREME_COLD_F
