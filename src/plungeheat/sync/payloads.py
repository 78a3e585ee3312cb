"""Wire payloads exchanged between paired devices."""

from dataclasses import dataclass
from datetime import datetime, timezone

from ..codec import session_from_dict, session_to_dict
from ..models import InvalidSession, Session

__all__ = [
    "ACTION_NEW_SESSION",
    "REQUIRED_SESSION_FIELDS",
    "MalformedPayload",
    "ContextSnapshot",
    "encode_session_event",
    "decode_session_event",
]

ACTION_NEW_SESSION = "new_session"
REQUIRED_SESSION_FIELDS = ("id", "type", "timestamp", "duration")


class MalformedPayload(ValueError):
    """Inbound payload is missing fields or carries invalid values."""

    pass


def encode_session_event(session: Session) -> dict:
    payload = session_to_dict(session)
    payload["action"] = ACTION_NEW_SESSION
    return payload


def decode_session_event(payload: dict) -> Session:
    """Build a validated Session from an event payload.

    Raises:
        MalformedPayload: wrong action, missing fields or invalid values
    """
    if not isinstance(payload, dict):
        raise MalformedPayload(f"Expected a dict, got {type(payload).__name__}")
    if payload.get("action") != ACTION_NEW_SESSION:
        raise MalformedPayload(f"Unsupported action: {payload.get('action')!r}")

    missing = [f for f in REQUIRED_SESSION_FIELDS if payload.get(f) in (None, "")]
    if missing:
        raise MalformedPayload(f"Missing fields: {', '.join(missing)}")

    try:
        session = session_from_dict(payload)
        session.validate()
    except (KeyError, ValueError, TypeError) as e:
        raise MalformedPayload(str(e)) from e
    return session


@dataclass(frozen=True)
class ContextSnapshot:
    """Summary counters broadcast with replace semantics.

    Only the snapshot with the latest ``last_update`` matters.
    """

    current_streak: int
    longest_streak: int
    today_sessions: int
    total_sessions: int
    last_update: datetime

    def is_newer_than(self, other: "ContextSnapshot") -> bool:
        return _utc(self.last_update) > _utc(other.last_update)

    def to_dict(self) -> dict:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "today_sessions": self.today_sessions,
            "total_sessions": self.total_sessions,
            "last_update": self.last_update.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ContextSnapshot":
        try:
            return cls(
                current_streak=int(data["current_streak"]),
                longest_streak=int(data["longest_streak"]),
                today_sessions=int(data["today_sessions"]),
                total_sessions=int(data["total_sessions"]),
                last_update=datetime.fromisoformat(data["last_update"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise MalformedPayload(f"Bad context snapshot: {e}") from e


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        ts = ts.astimezone()
    return ts.astimezone(timezone.utc)
