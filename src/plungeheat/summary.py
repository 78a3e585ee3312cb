"""Summary publisher - glanceable snapshot for widgets and the companion display."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import Config
from .models import local_day
from .session_store import SessionStore
from .streaks import StreakCalculator
from .sync.payloads import ContextSnapshot

__all__ = ["Summary", "SummaryPublisher"]

logger = logging.getLogger(__name__)


@dataclass
class Summary:
    current_streak: int = 0
    longest_streak: int = 0
    today_sessions: int = 0
    last_session_type: Optional[str] = None
    total_sessions: int = 0
    last_update: Optional[str] = None


class SummaryPublisher:
    """Writes the summary snapshot; consumers only ever read it.

    The snapshot is a small JSON document replaced atomically so a reader
    never sees a half-written file.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        store: Optional[SessionStore] = None,
        streaks: Optional[StreakCalculator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        if path is None:
            path = Config.get_data_dir() / "summary.json"
        self.path = path
        self._store = store
        self._streaks = streaks
        self._clock = clock

    def refresh(self, _event: object = None) -> Summary:
        """Rebuild the snapshot from the ledger. Usable as an event handler."""
        if self._store is None or self._streaks is None:
            raise RuntimeError("SummaryPublisher.refresh needs a store and a streak calculator")

        now = self._clock()
        streak = self._streaks.check_lapse(local_day(now))
        today = self._store.today()
        latest = max(today, key=lambda s: s.timestamp) if today else None

        summary = Summary(
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            today_sessions=len(today),
            last_session_type=latest.type.display_name if latest else None,
            total_sessions=len(self._store),
            last_update=datetime.now(timezone.utc).isoformat(),
        )
        self._write(summary)
        return summary

    def apply_context(self, snapshot: ContextSnapshot) -> Summary:
        """Mirror counters received from the paired device."""
        previous = self.read()
        summary = Summary(
            current_streak=snapshot.current_streak,
            longest_streak=snapshot.longest_streak,
            today_sessions=snapshot.today_sessions,
            last_session_type=previous.last_session_type,
            total_sessions=snapshot.total_sessions,
            last_update=snapshot.last_update.isoformat(),
        )
        self._write(summary)
        return summary

    def read(self) -> Summary:
        """Current snapshot, or an empty one if none has been written."""
        if not self.path.exists():
            return Summary()
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
            return Summary(**{k: v for k, v in data.items() if k in Summary.__dataclass_fields__})
        except (OSError, ValueError, TypeError) as e:
            logger.warning(f"Unreadable summary snapshot: {e}")
            return Summary()

    def _write(self, summary: Summary) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump(asdict(summary), f, indent=2)
            os.replace(tmp_path, self.path)
            logger.debug(f"Summary written: {summary}")
        except OSError as e:
            logger.error(f"Failed to write summary snapshot: {e}")
