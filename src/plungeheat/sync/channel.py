"""Device channel - durable event delivery and best-effort context broadcast."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from ..config import DEFAULT_BATCH_SIZE
from .protocols import OutboxProtocol, TransportError, TransportProtocol

__all__ = ["ConnectivityState", "DeviceChannel"]

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict], object]
ReachabilityHandler = Callable[[bool], object]


class ConnectivityState(Enum):
    DISCONNECTED = "disconnected"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


class DeviceChannel:
    """Message channel to the paired device.

    Event messages go to the outbox first and are flushed whenever the
    channel is activated and the peer is reachable; they survive
    disconnects and restarts and may arrive more than once. Context
    snapshots are only accepted while reachable and are dropped
    otherwise, since the next snapshot supersedes them.

    ``send_event`` and ``broadcast_context`` never touch the network.
    Transport calls happen only in ``flush``, ``poll``, ``activate`` and
    ``probe``, which the scheduler drives off the ledger thread.
    ``flush_trigger`` asks for an early flush; without one, pending work
    waits for the next scheduled flush.

    Handlers run on whichever thread drives ``poll``/``set_reachable``;
    they must hand work off rather than mutate ledger state directly.
    """

    def __init__(
        self,
        transport: TransportProtocol,
        outbox: OutboxProtocol,
        batch_size: int = DEFAULT_BATCH_SIZE,
        flush_trigger: Optional[Callable[[], object]] = None,
    ):
        """Initialize the channel.

        Args:
            transport: Link to the paired device
            outbox: Durable storage for undelivered event messages
            batch_size: Events per delivery request
            flush_trigger: Schedules a flush off the calling thread
        """
        self.transport = transport
        self.outbox = outbox
        self.batch_size = batch_size
        self._flush_trigger = flush_trigger

        self._state = ConnectivityState.DISCONNECTED
        self._reachable = False
        self._flush_lock = threading.Lock()
        self._context_lock = threading.Lock()
        self._pending_context: Optional[dict] = None
        self._event_handlers: list[EventHandler] = []
        self._context_handlers: list[EventHandler] = []
        self._reachability_handlers: list[ReachabilityHandler] = []

        # Delivery backoff after failed flushes
        self._consecutive_failures = 0
        self._backoff_until = datetime.min.replace(tzinfo=timezone.utc)

    # -- state --------------------------------------------------------------

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def is_activated(self) -> bool:
        return self._state is ConnectivityState.ACTIVATED

    @property
    def is_reachable(self) -> bool:
        return self.is_activated and self._reachable

    def activate(self) -> bool:
        """Bring the transport up and flush anything queued before activation."""
        if self.is_activated:
            return True

        self._state = ConnectivityState.ACTIVATING
        try:
            self.transport.activate()
        except TransportError as e:
            logger.warning(f"Channel activation failed: {e}")
            self._state = ConnectivityState.DISCONNECTED
            return False

        self._state = ConnectivityState.ACTIVATED
        logger.info("Channel activated")
        self.set_reachable(self.transport.is_reachable())
        return True

    def deactivate(self) -> None:
        self._state = ConnectivityState.DISCONNECTED
        self._reachable = False
        with self._context_lock:
            self._pending_context = None
        logger.info("Channel deactivated")

    def set_reachable(self, reachable: bool) -> None:
        """Reachability signal from the transport."""
        if not self.is_activated:
            return
        changed = reachable != self._reachable
        self._reachable = reachable
        if not changed:
            return

        logger.info(f"Peer {'reachable' if reachable else 'unreachable'}")
        if reachable:
            self._backoff_until = datetime.min.replace(tzinfo=timezone.utc)
            self.flush()
        for handler in list(self._reachability_handlers):
            self._dispatch(handler, reachable)

    def probe(self) -> bool:
        """Ask the transport whether the peer is reachable and record the answer."""
        if not self.is_activated:
            return False
        self.set_reachable(self.transport.is_reachable())
        return self._reachable

    # -- handlers -----------------------------------------------------------

    def on_event_received(self, handler: EventHandler) -> None:
        self._event_handlers.append(handler)

    def on_context_received(self, handler: EventHandler) -> None:
        self._context_handlers.append(handler)

    def on_reachability_changed(self, handler: ReachabilityHandler) -> None:
        self._reachability_handlers.append(handler)

    # -- outbound -----------------------------------------------------------

    def send_event(self, payload: dict) -> None:
        """Queue an event message for durable delivery. Never raises for link errors."""
        self.outbox.enqueue([payload])
        if self.is_reachable:
            self._request_flush()

    def broadcast_context(self, context: dict) -> bool:
        """Hand a context snapshot to the next flush if the peer is reachable now.

        A newer snapshot replaces one still waiting to be sent.
        """
        if not self.is_reachable:
            logger.debug("Peer unreachable, skipping context broadcast")
            return False
        with self._context_lock:
            self._pending_context = context
        self._request_flush()
        return True

    def _request_flush(self) -> None:
        if self._flush_trigger is not None:
            self._flush_trigger()

    def _send_pending_context(self) -> bool:
        with self._context_lock:
            context, self._pending_context = self._pending_context, None
        if context is None:
            return False
        try:
            self.transport.send_context(context)
            return True
        except TransportError as e:
            logger.debug(f"Context broadcast failed: {e}")
            return False

    def flush(self) -> int:
        """Send the pending context, then deliver queued events.

        Returns how many events were delivered. Undelivered events stay
        queued and are retried after the backoff, however often they fail.
        """
        if not self.is_reachable:
            return 0
        self._send_pending_context()
        if datetime.now(timezone.utc) < self._backoff_until:
            return 0
        if not self._flush_lock.acquire(blocking=False):
            return 0

        delivered = 0
        try:
            while True:
                pending = self.outbox.dequeue(self.batch_size)
                if not pending:
                    break

                ids = [m.id for m in pending]
                try:
                    result = self.transport.send_events([m.payload for m in pending])
                except TransportError as e:
                    logger.warning(f"Event delivery failed: {e}")
                    self.outbox.increment_retry(ids)
                    self._apply_backoff()
                    break

                if not result.success:
                    logger.warning(f"Event delivery rejected: {result.error}")
                    self.outbox.increment_retry(ids)
                    self._apply_backoff()
                    break

                self.outbox.remove(ids)
                delivered += len(ids)
                self._consecutive_failures = 0
        finally:
            self._flush_lock.release()

        if delivered:
            logger.info(f"Delivered {delivered} queued events")
        return delivered

    def _apply_backoff(self) -> None:
        self._consecutive_failures += 1
        # 60s, 120s, 240s, 480s, max 600s
        delay = min(60 * (2 ** (self._consecutive_failures - 1)), 600)
        self._backoff_until = datetime.now(timezone.utc) + timedelta(seconds=delay)
        logger.info(f"Delivery backoff: retry in {delay}s (failure #{self._consecutive_failures})")

    # -- inbound ------------------------------------------------------------

    def poll(self) -> int:
        """Fetch and dispatch whatever the peer sent. Returns event count."""
        if not self.is_reachable:
            return 0
        try:
            inbound = self.transport.fetch_inbound()
        except TransportError as e:
            logger.debug(f"Inbox poll failed: {e}")
            return 0

        handled = []
        for event in inbound.events:
            for handler in list(self._event_handlers):
                self._dispatch(handler, event.payload)
            handled.append(event.delivery_id)

        if handled:
            try:
                self.transport.acknowledge(handled)
            except TransportError as e:
                # Unacknowledged events come back on the next poll
                logger.debug(f"Acknowledge failed: {e}")

        if inbound.context is not None:
            for handler in list(self._context_handlers):
                self._dispatch(handler, inbound.context)

        return len(handled)

    @staticmethod
    def _dispatch(handler: Callable, arg: object) -> None:
        try:
            handler(arg)
        except Exception:
            logger.exception(f"Channel handler {handler!r} failed")
