"""Streak calculator - consecutive calendar days with at least one session."""

import logging
from dataclasses import replace
from datetime import date
from typing import Optional

from .events import EventBus, StreakChanged
from .models import StreakState
from .persistence import PersistenceError, PersistencePort

__all__ = ["StreakCalculator"]

logger = logging.getLogger(__name__)


class StreakCalculator:
    """Owns the StreakState and its day-by-day transitions.

    Driven by committed sessions only; opening the app or refreshing a
    summary may lapse a streak but never extends one.

    Usage:
        streaks = StreakCalculator(persistence)
        streaks.record_session(date.today())
        streaks.state.current_streak
    """

    def __init__(self, persistence: PersistencePort, bus: Optional[EventBus] = None):
        self._persistence = persistence
        self._bus = bus
        self._state = StreakState()

    @property
    def state(self) -> StreakState:
        """A copy of the current state."""
        return replace(self._state)

    def load(self) -> None:
        stored = self._persistence.load_streak()
        if stored is not None:
            self._state = stored
        logger.debug(
            f"Loaded streak: current={self._state.current_streak} "
            f"longest={self._state.longest_streak} last={self._state.last_active_day}"
        )

    def record_session(self, day: date) -> StreakState:
        """Apply the "session on ``day``" signal."""
        state = self._state
        last = state.last_active_day

        if last is None:
            state.current_streak = 1
            state.longest_streak = max(state.longest_streak, 1)
            state.last_active_day = day
        else:
            gap = (day - last).days
            if gap <= 0:
                # Already counted, or back-dated behind the chain
                return self.state
            if gap == 1:
                state.current_streak += 1
                state.longest_streak = max(state.longest_streak, state.current_streak)
            else:
                state.current_streak = 1
                state.longest_streak = max(state.longest_streak, 1)
            state.last_active_day = day

        logger.info(
            f"Streak updated for {day}: current={state.current_streak} "
            f"longest={state.longest_streak}"
        )
        self._save_and_notify()
        return self.state

    def check_lapse(self, today: date) -> StreakState:
        """Zero the current streak once a whole day has passed without a session.

        ``last_active_day`` stays put so the next session restarts the chain.
        """
        state = self._state
        if (
            state.last_active_day is not None
            and state.current_streak > 0
            and (today - state.last_active_day).days > 1
        ):
            logger.info(
                f"Streak lapsed: no session since {state.last_active_day} "
                f"(was {state.current_streak})"
            )
            state.current_streak = 0
            self._save_and_notify()
        return self.state

    def reset(self) -> None:
        self._state = StreakState()
        self._save_and_notify()

    def _save_and_notify(self) -> None:
        try:
            self._persistence.save_streak(self._state)
        except PersistenceError as e:
            logger.error(f"Failed to persist streak state: {e}")
        if self._bus is not None:
            self._bus.publish(StreakChanged(self.state))
