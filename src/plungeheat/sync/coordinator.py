"""Sync coordinator - applies remote sessions and keeps the peer's counters fresh."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from ..events import ContextUpdated, EventBus, SessionCommitted
from ..models import InvalidSession, Session
from ..session_store import SessionStore
from ..streaks import StreakCalculator
from .channel import DeviceChannel
from .payloads import (
    ContextSnapshot,
    MalformedPayload,
    decode_session_event,
    encode_session_event,
)

if TYPE_CHECKING:
    from ..summary import SummaryPublisher

__all__ = ["SyncCoordinator", "REMOTE_SESSION_NOTE"]

logger = logging.getLogger(__name__)

REMOTE_SESSION_NOTE = "Logged from companion device"

Submit = Callable[..., object]


class SyncCoordinator:
    """Bridges the device channel and the ledger.

    Channel callbacks arrive on the transport's thread; everything that
    touches ledger state is passed to ``submit`` (the ledger's serialized
    executor) instead of running in place. In the other direction, work
    done on the ledger thread only queues messages on the channel; the
    network sends happen in the channel's scheduled flush.
    """

    def __init__(
        self,
        channel: DeviceChannel,
        store: SessionStore,
        streaks: StreakCalculator,
        submit: Submit,
        is_primary: bool = True,
        summary: Optional["SummaryPublisher"] = None,
        bus: Optional[EventBus] = None,
    ):
        self.channel = channel
        self.store = store
        self.streaks = streaks
        self.is_primary = is_primary
        self._submit = submit
        self._summary = summary
        self._bus = bus
        self._latest_context: Optional[ContextSnapshot] = None

    def start(self) -> bool:
        """Wire channel callbacks and ledger events, then activate the channel."""
        self.channel.on_event_received(self.on_event_received)
        self.channel.on_context_received(self.on_context_received)
        self.channel.on_reachability_changed(self.on_reachability_changed)
        if self._bus is not None:
            self._bus.subscribe(SessionCommitted, self._on_session_committed)
        return self.channel.activate()

    @property
    def latest_context(self) -> Optional[ContextSnapshot]:
        return self._latest_context

    # -- outbound -----------------------------------------------------------

    def publish_local_session(self, session: Session) -> None:
        """Queue a locally created session for the peer (fire-and-forget)."""
        self.channel.send_event(encode_session_event(session))

    def current_snapshot(self) -> ContextSnapshot:
        streak = self.streaks.state
        return ContextSnapshot(
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            today_sessions=len(self.store.today()),
            total_sessions=len(self.store),
            last_update=datetime.now(timezone.utc),
        )

    def broadcast_context(self) -> bool:
        return self.channel.broadcast_context(self.current_snapshot().to_dict())

    def _on_session_committed(self, event: SessionCommitted) -> None:
        if not event.remote:
            self.publish_local_session(event.session)
            self.broadcast_context()
        elif self.is_primary:
            self.broadcast_context()

    # -- inbound (transport thread) ----------------------------------------

    def on_event_received(self, payload: dict):
        """Decode a session event and hand it to the ledger executor."""
        try:
            session = decode_session_event(payload)
        except MalformedPayload as e:
            logger.warning(f"Dropping malformed session event: {e}")
            return None
        return self._submit(self.apply_remote_session, session)

    def on_context_received(self, payload: dict):
        try:
            snapshot = ContextSnapshot.from_dict(payload)
        except MalformedPayload as e:
            logger.warning(f"Dropping malformed context snapshot: {e}")
            return None
        return self._submit(self.apply_context, snapshot)

    def on_reachability_changed(self, reachable: bool):
        if reachable:
            return self._submit(self.broadcast_context)
        return None

    # -- ledger executor ----------------------------------------------------

    def apply_remote_session(self, session: Session) -> bool:
        """Commit a remote session once. Redeliveries are no-ops."""
        if self.store.contains(session.id):
            logger.debug(f"Session {session.id} already applied, ignoring redelivery")
            return False

        if not session.notes:
            session = replace(session, notes=REMOTE_SESSION_NOTE)
        try:
            self.store.add(session, remote=True)
        except InvalidSession as e:
            logger.warning(f"Rejected remote session {session.id}: {e}")
            return False
        return True

    def apply_context(self, snapshot: ContextSnapshot) -> bool:
        """Keep the snapshot only if it is newer than the one we hold."""
        if self._latest_context is not None and not snapshot.is_newer_than(self._latest_context):
            logger.debug(f"Ignoring stale context from {snapshot.last_update.isoformat()}")
            return False

        self._latest_context = snapshot
        if self._summary is not None and not self.is_primary:
            self._summary.apply_context(snapshot)
        if self._bus is not None:
            self._bus.publish(ContextUpdated(snapshot))
        return True
