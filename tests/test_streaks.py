"""Tests for the streak calculator."""

import tempfile
from datetime import date, timedelta
from pathlib import Path

from plungeheat.events import EventBus, StreakChanged
from plungeheat.persistence import SQLitePersistence
from plungeheat.streaks import StreakCalculator

DAY0 = date(2026, 10, 1)


def day(n: int) -> date:
    return DAY0 + timedelta(days=n)


class TestStreakCalculator:
    """Tests for StreakCalculator."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.persistence = SQLitePersistence(db_path=Path(self.temp_dir) / "ledger.db")
        self.bus = EventBus()
        self.changes = []
        self.bus.subscribe(StreakChanged, self.changes.append)
        self.streaks = StreakCalculator(self.persistence, bus=self.bus)

    def teardown_method(self):
        """Clean up."""
        self.persistence.close()

    def test_first_session_starts_streak(self):
        state = self.streaks.record_session(day(0))

        assert state.current_streak == 1
        assert state.longest_streak == 1
        assert state.last_active_day == day(0)

    def test_consecutive_days_then_gap(self):
        """Two days in a row, a missed day, then a reset to one."""
        self.streaks.record_session(day(0))
        assert self.streaks.record_session(day(1)).current_streak == 2

        state = self.streaks.record_session(day(3))

        assert state.current_streak == 1
        assert state.longest_streak == 2
        assert state.last_active_day == day(3)

    def test_same_day_is_noop(self):
        self.streaks.record_session(day(0))
        self.changes.clear()

        state = self.streaks.record_session(day(0))

        assert state.current_streak == 1
        assert self.changes == []

    def test_back_dated_session_is_noop(self):
        self.streaks.record_session(day(5))

        state = self.streaks.record_session(day(2))

        assert state.current_streak == 1
        assert state.last_active_day == day(5)

    def test_longest_streak_never_decreases(self):
        for n in range(5):
            self.streaks.record_session(day(n))
        self.streaks.record_session(day(10))
        self.streaks.record_session(day(11))

        assert self.streaks.state.current_streak == 2
        assert self.streaks.state.longest_streak == 5

    def test_check_lapse_zeroes_current(self):
        self.streaks.record_session(day(0))
        self.streaks.record_session(day(1))

        state = self.streaks.check_lapse(day(3))

        assert state.current_streak == 0
        assert state.longest_streak == 2
        assert state.last_active_day == day(1)

    def test_check_lapse_keeps_streak_through_next_day(self):
        self.streaks.record_session(day(0))

        assert self.streaks.check_lapse(day(0)).current_streak == 1
        assert self.streaks.check_lapse(day(1)).current_streak == 1

    def test_session_after_lapse_restarts_chain(self):
        self.streaks.record_session(day(0))
        self.streaks.check_lapse(day(4))

        assert self.streaks.record_session(day(4)).current_streak == 1

    def test_state_is_a_copy(self):
        self.streaks.record_session(day(0))
        state = self.streaks.state
        state.current_streak = 99

        assert self.streaks.state.current_streak == 1

    def test_changes_are_persisted_and_published(self):
        self.streaks.record_session(day(0))
        self.streaks.record_session(day(1))

        reloaded = StreakCalculator(self.persistence)
        reloaded.load()

        assert reloaded.state.current_streak == 2
        assert [c.state.current_streak for c in self.changes] == [1, 2]

    def test_reset(self):
        self.streaks.record_session(day(0))

        self.streaks.reset()

        assert self.streaks.state.current_streak == 0
        assert self.streaks.state.longest_streak == 0
        assert self.streaks.state.last_active_day is None
        assert self.persistence.load_streak().last_active_day is None
