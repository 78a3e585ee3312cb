"""Protocol types for the device channel's collaborators.

Defines what DeviceChannel needs from a transport and from durable
message storage, so tests can pair two channels in-process.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

__all__ = [
    "TransportError",
    "DeliveryResult",
    "InboundEvent",
    "Inbound",
    "TransportProtocol",
    "OutboxProtocol",
]


class TransportError(Exception):
    """The link to the paired device failed; the caller may retry later."""

    pass


@dataclass
class DeliveryResult:
    success: bool
    delivered: int = 0
    error: Optional[str] = None


@dataclass
class InboundEvent:
    delivery_id: str
    payload: dict


@dataclass
class Inbound:
    """What the paired device sent since the last poll."""

    events: list[InboundEvent] = field(default_factory=list)
    context: Optional[dict] = None


@runtime_checkable
class TransportProtocol(Protocol):
    """Link to the paired device."""

    def activate(self) -> None: ...

    def is_reachable(self) -> bool: ...

    def send_events(self, events: list[dict]) -> DeliveryResult: ...

    def send_context(self, context: dict) -> None: ...

    def fetch_inbound(self) -> Inbound: ...

    def acknowledge(self, delivery_ids: list[str]) -> None: ...


@runtime_checkable
class OutboxProtocol(Protocol):
    """Durable storage for event messages not yet delivered."""

    def enqueue(self, payloads: list[dict]) -> int: ...

    def dequeue(self, batch_size: int = 50) -> list: ...

    def remove(self, message_ids: list[int]) -> int: ...

    def increment_retry(self, message_ids: list[int]) -> None: ...

    def count_stalled(self, min_retries: int) -> int: ...

    def size(self) -> int: ...

    def is_empty(self) -> bool: ...
