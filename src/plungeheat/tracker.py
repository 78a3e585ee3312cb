"""Tracker - wires the ledger together and serializes every mutation."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .biometrics import HeartRateProvider, read_heart_rate
from .config import Config
from .events import EventBus, SessionCommitted, SessionDeleted, SessionUpdated
from .export import export_sessions_csv
from .models import (
    Achievement,
    Challenge,
    Goal,
    Session,
    SessionType,
    Statistics,
    StreakState,
    Temperature,
    TemperatureUnit,
)
from .persistence import PersistencePort
from .progress import ProgressEngine
from .session_store import SessionStore
from .streaks import StreakCalculator
from .summary import SummaryPublisher

__all__ = ["Tracker"]

logger = logging.getLogger(__name__)


class Tracker:
    """Owns the ledger services and the single thread allowed to mutate them.

    UI actions go through the convenience methods below; transport
    callbacks use ``submit``. Both end up on the same one-worker executor,
    so commits are applied strictly one at a time.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        config: Optional[Config] = None,
        clock: Callable[[], datetime] = datetime.now,
        summary_path: Optional[Path] = None,
        heart_rate_provider: Optional[HeartRateProvider] = None,
        bus: Optional[EventBus] = None,
    ):
        self.config = config or Config()
        self.persistence = persistence
        self.bus = bus or EventBus()
        self.heart_rate_provider = heart_rate_provider
        self._clock = clock

        self.streaks = StreakCalculator(persistence, bus=self.bus)
        self.progress = ProgressEngine(persistence, bus=self.bus, clock=clock)
        self.store = SessionStore(
            persistence,
            self.streaks,
            self.progress,
            bus=self.bus,
            clock=clock,
            first_weekday=self.config.tracker.first_weekday,
            temperature_unit=TemperatureUnit(self.config.tracker.temperature_unit),
        )
        self.summary = SummaryPublisher(
            path=summary_path, store=self.store, streaks=self.streaks, clock=clock
        )
        for event_type in (SessionCommitted, SessionDeleted, SessionUpdated):
            self.bus.subscribe(event_type, self.summary.refresh)

        self._ledger_thread: Optional[int] = None
        self._executor = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="ledger",
            initializer=self._mark_ledger_thread,
        )
        self._closed = False

    def _mark_ledger_thread(self) -> None:
        self._ledger_thread = threading.get_ident()

    # -- executor -----------------------------------------------------------

    def submit(self, fn: Callable, *args, **kwargs) -> Future:
        """Queue ``fn`` on the ledger thread."""
        return self._executor.submit(fn, *args, **kwargs)

    def call(self, fn: Callable, *args, **kwargs):
        """Run ``fn`` on the ledger thread and wait for its result."""
        if threading.get_ident() == self._ledger_thread:
            return fn(*args, **kwargs)
        return self.submit(fn, *args, **kwargs).result()

    # -- lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Load stored state and publish a fresh summary."""
        self.call(self._load)

    def _load(self) -> None:
        self.streaks.load()
        self.progress.load()
        self.store.load()
        self.summary.refresh()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=True)
        logger.info("Tracker stopped")

    # -- sessions -----------------------------------------------------------

    def log_session(
        self,
        session_type: SessionType,
        duration: float,
        temperature: Optional[Temperature] = None,
        notes: Optional[str] = None,
        protocol: Optional[str] = None,
        breathing_technique: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Session:
        """Record a session the user just finished.

        Raises:
            InvalidSession: if the session fails validation
        """
        session = Session(
            type=session_type,
            duration=duration,
            timestamp=timestamp or self._clock(),
            temperature=temperature,
            heart_rate=read_heart_rate(self.heart_rate_provider),
            notes=notes,
            protocol=protocol,
            breathing_technique=breathing_technique,
        )
        return self.call(self.store.add, session)

    def delete_session(self, session_id: str) -> bool:
        return self.call(self.store.delete, session_id)

    def update_session(self, session: Session) -> bool:
        return self.call(self.store.update, session)

    def sessions(self) -> list[Session]:
        return self.call(self.store.all)

    def statistics(self) -> Statistics:
        return self.call(self.store.statistics)

    def streak(self) -> StreakState:
        return self.call(lambda: self.streaks.state)

    # -- progress -----------------------------------------------------------

    def achievements(self) -> list[Achievement]:
        return self.call(self.progress.achievements)

    def goals(self) -> list[Goal]:
        return self.call(self.progress.goals)

    def add_goal(self, goal: Goal) -> Goal:
        return self.call(self.progress.add_goal, goal)

    def update_goal(self, goal: Goal) -> bool:
        return self.call(self.progress.update_goal, goal)

    def delete_goal(self, goal_id: str) -> bool:
        return self.call(self.progress.delete_goal, goal_id)

    def available_challenges(self) -> list[Challenge]:
        return self.call(self.progress.available_challenges)

    def join_challenge(self, challenge_id: str) -> Challenge:
        return self.call(self.progress.join_challenge, challenge_id)

    def leave_challenge(self, challenge_id: str) -> bool:
        return self.call(self.progress.leave_challenge, challenge_id)

    # -- maintenance --------------------------------------------------------

    def reset(self) -> None:
        """Erase sessions, streaks and progress."""
        self.call(self._reset)

    def _reset(self) -> None:
        self.store.reset()
        self.streaks.reset()
        self.progress.reset()
        self.summary.refresh()
        logger.info("All tracker data reset")

    def export_csv(self, directory: Path) -> Path:
        return export_sessions_csv(self.sessions(), directory, today=self._clock())

    def __enter__(self) -> "Tracker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()
