"""Sync module - durable event delivery and context broadcast between paired devices."""

from .payloads import ContextSnapshot, MalformedPayload, decode_session_event, encode_session_event
from .protocols import DeliveryResult, Inbound, InboundEvent, TransportError, TransportProtocol
from .queue import Outbox, OutboxMessage
from .relay_client import RelayAuthError, RelayClient, RelayClientError
from .channel import ConnectivityState, DeviceChannel
from .coordinator import SyncCoordinator

__all__ = [
    "ContextSnapshot",
    "MalformedPayload",
    "decode_session_event",
    "encode_session_event",
    "DeliveryResult",
    "Inbound",
    "InboundEvent",
    "TransportError",
    "TransportProtocol",
    "Outbox",
    "OutboxMessage",
    "RelayAuthError",
    "RelayClient",
    "RelayClientError",
    "ConnectivityState",
    "DeviceChannel",
    "SyncCoordinator",
]
