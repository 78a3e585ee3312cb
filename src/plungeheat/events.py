"""Typed state-change events and a small observer registry.

The ledger publishes these after it has finished mutating state; the
summary publisher, the sync coordinator and any UI layer subscribe.
Core transitions (streak, achievements) never depend on the bus: they
are called directly from the commit path.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from .models import Achievement, Challenge, Goal, Session, StreakState

__all__ = [
    "EventBus",
    "SessionCommitted",
    "SessionDeleted",
    "SessionUpdated",
    "StreakChanged",
    "AchievementUnlocked",
    "GoalCompleted",
    "ChallengeCompleted",
    "ContextUpdated",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCommitted:
    session: Session
    remote: bool = False


@dataclass(frozen=True)
class SessionDeleted:
    session_id: str


@dataclass(frozen=True)
class SessionUpdated:
    session: Session


@dataclass(frozen=True)
class StreakChanged:
    state: StreakState


@dataclass(frozen=True)
class AchievementUnlocked:
    achievement: Achievement


@dataclass(frozen=True)
class GoalCompleted:
    goal: Goal


@dataclass(frozen=True)
class ChallengeCompleted:
    challenge: Challenge


@dataclass(frozen=True)
class ContextUpdated:
    """A newer summary snapshot arrived from the paired device."""

    snapshot: object


E = TypeVar("E")


class EventBus:
    """Dispatches events synchronously to handlers registered per event type."""

    def __init__(self):
        self._handlers: dict[type, list[Callable]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Register a handler; returns a callable that unregisters it."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def publish(self, event: object) -> None:
        """Deliver an event to its handlers in registration order.

        A failing handler is logged and does not stop the others.
        """
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(f"Handler {handler!r} failed for {type(event).__name__}")

    def handler_count(self, event_type: Optional[type] = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values())
