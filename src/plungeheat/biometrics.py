"""Biometric provider interface."""

import logging
from typing import Optional, Protocol, runtime_checkable

__all__ = ["HeartRateProvider", "read_heart_rate"]

logger = logging.getLogger(__name__)


@runtime_checkable
class HeartRateProvider(Protocol):
    """Source of the most recent heart-rate sample (bpm)."""

    def latest_heart_rate(self) -> Optional[int]: ...


def read_heart_rate(provider: Optional[HeartRateProvider]) -> Optional[int]:
    """Best-effort heart rate for a new session.

    Any provider failure or implausible value yields None so that logging
    a session is never blocked.
    """
    if provider is None:
        return None
    try:
        value = provider.latest_heart_rate()
    except Exception as e:
        logger.warning(f"Heart rate provider failed: {e}")
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        if value is not None:
            logger.debug(f"Ignoring implausible heart rate {value!r}")
        return None
    return value
