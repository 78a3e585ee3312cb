"""Tests for the session store and its commit chain."""

import tempfile
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

from plungeheat.events import EventBus, SessionCommitted, SessionDeleted, SessionUpdated
from plungeheat.models import InvalidSession, Session, SessionType, Temperature, TemperatureUnit
from plungeheat.persistence import PersistenceError, SQLitePersistence
from plungeheat.progress import ProgressEngine
from plungeheat.session_store import SessionStore
from plungeheat.streaks import StreakCalculator

# Wednesday
NOW = datetime(2026, 10, 21, 12, 0)


class TestSessionStore:
    """Tests for SessionStore."""

    def setup_method(self):
        """Set up a ledger backed by a temp database."""
        self.temp_dir = tempfile.mkdtemp()
        self.persistence = SQLitePersistence(db_path=Path(self.temp_dir) / "ledger.db")
        self.now = NOW
        self.bus = EventBus()
        self.streaks = StreakCalculator(self.persistence, bus=self.bus)
        self.progress = ProgressEngine(self.persistence, bus=self.bus, clock=lambda: self.now)
        self.store = SessionStore(
            self.persistence, self.streaks, self.progress, bus=self.bus, clock=lambda: self.now
        )

    def teardown_method(self):
        """Clean up."""
        self.persistence.close()

    def cold(self, duration=180, at=NOW, **kwargs) -> Session:
        return Session(SessionType.COLD_PLUNGE, duration, timestamp=at, **kwargs)

    def sauna(self, duration=900, at=NOW, **kwargs) -> Session:
        return Session(SessionType.SAUNA, duration, timestamp=at, **kwargs)

    def test_first_cold_plunge(self):
        """A first-ever cold plunge counts, unlocks First Plunge and starts a streak."""
        self.store.add(self.cold(180, temperature=Temperature(50)))

        assert self.store.statistics().total_cold_sessions == 1
        assert self.progress.achievement("first_plunge").is_unlocked
        assert self.progress.achievement("first_plunge").unlocked_date == NOW
        assert self.streaks.state.current_streak == 1

    def test_add_persists_and_orders_most_recent_first(self):
        older = self.store.add(self.cold(at=NOW - timedelta(days=1)))
        newer = self.store.add(self.sauna(at=NOW))

        assert [s.id for s in self.store.all()] == [newer.id, older.id]
        assert {s.id for s in self.persistence.fetch_sessions()} == {older.id, newer.id}

    def test_add_inserts_at_head_even_when_back_dated(self):
        first = self.store.add(self.cold(at=NOW))
        back_dated = self.store.add(self.cold(at=NOW - timedelta(days=3)))

        assert self.store.all()[0].id == back_dated.id
        assert self.store.all()[1].id == first.id

    def test_invalid_session_not_stored(self):
        with pytest.raises(InvalidSession):
            self.store.add(self.cold(duration=0))

        assert len(self.store) == 0
        assert self.persistence.fetch_sessions() == []
        assert self.streaks.state.current_streak == 0

    def test_duplicate_id_rejected(self):
        session = self.store.add(self.cold())

        with pytest.raises(InvalidSession):
            self.store.add(replace(session, duration=300))

        assert len(self.store) == 1

    def test_streak_updates_before_achievements(self):
        """Seven consecutive days unlock Week Warrior on the seventh commit."""
        for offset in range(6, -1, -1):
            self.store.add(self.cold(at=NOW - timedelta(days=offset)))

        assert self.streaks.state.current_streak == 7
        assert self.progress.achievement("week_warrior").is_unlocked

    def test_commit_publishes_event(self):
        received = []
        self.bus.subscribe(SessionCommitted, received.append)

        session = self.store.add(self.cold())

        assert received == [SessionCommitted(session, remote=False)]

    def test_remote_flag_is_published(self):
        received = []
        self.bus.subscribe(SessionCommitted, received.append)

        self.store.add(self.cold(), remote=True)

        assert received[0].remote is True

    def test_persistence_failure_keeps_memory_state(self):
        persistence = Mock()
        persistence.create_session.side_effect = PersistenceError("disk full")
        streaks = StreakCalculator(persistence)
        progress = ProgressEngine(persistence, clock=lambda: NOW)
        store = SessionStore(persistence, streaks, progress, clock=lambda: NOW)

        store.add(self.cold())

        assert len(store) == 1
        assert streaks.state.current_streak == 1

    def test_delete_is_idempotent(self):
        session = self.store.add(self.cold())
        deleted = []
        self.bus.subscribe(SessionDeleted, deleted.append)

        assert self.store.delete(session.id) is True
        assert self.store.delete(session.id) is False
        assert self.store.delete("never-existed") is False

        assert len(self.store) == 0
        assert self.persistence.fetch_sessions() == []
        assert deleted == [SessionDeleted(session.id)]

    def test_delete_does_not_revoke_progress(self):
        session = self.store.add(self.cold())

        self.store.delete(session.id)

        assert self.progress.achievement("first_plunge").is_unlocked
        assert self.streaks.state.current_streak == 1

    def test_update_replaces_without_recompute(self):
        session = self.store.add(self.cold(180))
        streak_before = self.streaks.state
        updated = []
        self.bus.subscribe(SessionUpdated, updated.append)

        edited = replace(session, notes="felt great", duration=600)
        assert self.store.update(edited) is True

        assert self.store.get(session.id).notes == "felt great"
        assert self.persistence.fetch_sessions()[0].notes == "felt great"
        assert self.streaks.state == streak_before
        assert self.progress.achievement("cold_warrior").progress == 3
        assert updated == [SessionUpdated(edited)]

    def test_update_unknown_session(self):
        assert self.store.update(self.cold()) is False

    def test_update_validates(self):
        session = self.store.add(self.cold())

        with pytest.raises(InvalidSession):
            self.store.update(replace(session, duration=-1))

    def test_reset(self):
        self.store.add(self.cold())

        self.store.reset()

        assert len(self.store) == 0
        assert self.persistence.fetch_sessions() == []

    def test_load(self):
        first = self.store.add(self.cold(at=NOW - timedelta(hours=2)))
        second = self.store.add(self.sauna(at=NOW))

        reloaded = SessionStore(self.persistence, self.streaks, self.progress, clock=lambda: NOW)
        reloaded.load()

        assert [s.id for s in reloaded.all()] == [second.id, first.id]
        assert reloaded.contains(first.id)


class TestSessionQueries:
    """Tests for date and type queries."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.persistence = SQLitePersistence(db_path=Path(self.temp_dir) / "ledger.db")
        streaks = StreakCalculator(self.persistence)
        progress = ProgressEngine(self.persistence, clock=lambda: NOW)
        self.store = SessionStore(self.persistence, streaks, progress, clock=lambda: NOW)

        self.today_cold = self.store.add(Session(SessionType.COLD_PLUNGE, 120, timestamp=NOW))
        self.monday_sauna = self.store.add(
            Session(SessionType.SAUNA, 900, timestamp=datetime(2026, 10, 19, 18, 0))
        )
        self.sunday_cold = self.store.add(
            Session(SessionType.COLD_PLUNGE, 60, timestamp=datetime(2026, 10, 18, 8, 0))
        )
        self.september = self.store.add(
            Session(SessionType.SAUNA, 600, timestamp=datetime(2026, 9, 30, 20, 0))
        )

    def teardown_method(self):
        self.persistence.close()

    def test_for_date(self):
        assert self.store.for_date(date(2026, 10, 19)) == [self.monday_sauna]
        assert self.store.for_date(date(2026, 10, 20)) == []

    def test_today(self):
        assert self.store.today() == [self.today_cold]

    def test_for_week_starts_monday(self):
        ids = {s.id for s in self.store.for_week(date(2026, 10, 21))}
        assert ids == {self.today_cold.id, self.monday_sauna.id}

    def test_for_week_with_sunday_start(self):
        store = SessionStore(
            self.persistence, StreakCalculator(self.persistence),
            ProgressEngine(self.persistence, clock=lambda: NOW),
            clock=lambda: NOW, first_weekday=6,
        )
        store.load()

        ids = {s.id for s in store.for_week(date(2026, 10, 21))}
        assert ids == {self.today_cold.id, self.monday_sauna.id, self.sunday_cold.id}

    def test_for_month(self):
        ids = {s.id for s in self.store.for_month(date(2026, 10, 5))}
        assert ids == {self.today_cold.id, self.monday_sauna.id, self.sunday_cold.id}

    def test_of_type(self):
        assert {s.id for s in self.store.of_type(SessionType.SAUNA)} == {
            self.monday_sauna.id,
            self.september.id,
        }

    def test_days_with_sessions(self):
        grouped = self.store.days_with_sessions(date(2026, 10, 1))

        assert set(grouped) == {date(2026, 10, 21), date(2026, 10, 19), date(2026, 10, 18)}
        assert grouped[date(2026, 10, 19)] == [self.monday_sauna]


class TestStatistics:
    """Tests for Statistics aggregation."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.persistence = SQLitePersistence(db_path=Path(self.temp_dir) / "ledger.db")
        streaks = StreakCalculator(self.persistence)
        self.progress = ProgressEngine(self.persistence, clock=lambda: NOW)
        self.store = SessionStore(self.persistence, streaks, self.progress, clock=lambda: NOW)

    def teardown_method(self):
        self.persistence.close()

    def add(self, session_type, duration, at, temperature=None):
        return self.store.add(Session(session_type, duration, timestamp=at, temperature=temperature))

    def test_empty(self):
        stats = self.store.statistics()

        assert stats.total_sessions == 0
        assert stats.average_duration == 0
        assert stats.average_temperature is None

    def test_totals_and_averages(self):
        self.add(SessionType.COLD_PLUNGE, 180, NOW, Temperature(50))
        self.add(SessionType.COLD_PLUNGE, 120, NOW, Temperature(10, TemperatureUnit.CELSIUS))
        self.add(SessionType.SAUNA, 900, NOW)

        stats = self.store.statistics()

        assert stats.total_sessions == 3
        assert stats.total_cold_sessions == 2
        assert stats.total_sauna_sessions == 1
        assert stats.total_duration == 1200
        assert stats.average_duration == 400
        assert stats.average_temperature == pytest.approx(50.0)
        assert stats.cold_minutes == 5
        assert stats.sauna_minutes == 15

    def test_week_and_month_windows(self):
        self.add(SessionType.SAUNA, 600, datetime(2026, 10, 19, 9, 0))
        self.add(SessionType.SAUNA, 600, datetime(2026, 10, 18, 9, 0))
        self.add(SessionType.SAUNA, 600, datetime(2026, 10, 1, 9, 0))
        self.add(SessionType.SAUNA, 600, datetime(2026, 9, 30, 9, 0))

        stats = self.store.statistics()

        assert stats.sessions_this_week == 1
        assert stats.sessions_this_month == 3

    def test_time_of_day_counters(self):
        self.add(SessionType.COLD_PLUNGE, 60, datetime(2026, 10, 21, 6, 59))
        self.add(SessionType.COLD_PLUNGE, 60, datetime(2026, 10, 21, 7, 0))
        self.add(SessionType.SAUNA, 60, datetime(2026, 10, 21, 21, 0))
        self.add(SessionType.SAUNA, 60, datetime(2026, 10, 21, 20, 59))

        stats = self.store.statistics()

        assert stats.early_sessions == 1
        assert stats.late_sessions == 1

    def test_time_of_day_counters_use_local_hour_of_aware_timestamps(self):
        early = datetime(2026, 10, 21, 6, 30).astimezone().astimezone(timezone.utc)
        late = datetime(2026, 10, 21, 22, 0).astimezone().astimezone(timezone.utc)
        self.add(SessionType.COLD_PLUNGE, 60, early)
        self.add(SessionType.SAUNA, 60, late)

        stats = self.store.statistics()

        assert stats.early_sessions == 1
        assert stats.late_sessions == 1

    def test_extreme_cold_thresholds(self):
        self.add(SessionType.COLD_PLUNGE, 60, NOW, Temperature(50))
        assert not self.progress.achievement("extreme_explorer").is_unlocked

        self.add(SessionType.COLD_PLUNGE, 60, NOW, Temperature(5, TemperatureUnit.CELSIUS))
        assert self.store.statistics().extreme_cold_sessions == 0

        self.add(SessionType.COLD_PLUNGE, 60, NOW, Temperature(39))
        self.add(SessionType.COLD_PLUNGE, 60, NOW, Temperature(4, TemperatureUnit.CELSIUS))

        assert self.store.statistics().extreme_cold_sessions == 2
        assert self.progress.achievement("extreme_explorer").is_unlocked

    def test_consistent_weeks(self):
        for offset in range(4):
            self.add(SessionType.SAUNA, 600, datetime(2026, 10, 12, 9, 0) + timedelta(days=offset))
        for offset in range(3):
            self.add(SessionType.SAUNA, 600, datetime(2026, 10, 19, 9, 0) + timedelta(days=offset))

        stats = self.store.statistics()

        assert stats.consistent_weeks == 1
        assert self.progress.achievement("consistent_champion").progress == 4
