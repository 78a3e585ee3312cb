"""CSV export of the session history."""

import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .models import Session

__all__ = ["CSV_HEADER", "sessions_to_csv", "export_sessions_csv"]

logger = logging.getLogger(__name__)

CSV_HEADER = ["Date", "Type", "Duration (seconds)", "Temperature", "Unit", "Heart Rate", "Notes"]


def sessions_to_csv(sessions: Iterable[Session]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for session in sessions:
        temperature = session.temperature
        writer.writerow(
            [
                session.timestamp.isoformat(),
                session.type.display_name,
                int(session.duration),
                f"{temperature.value:g}" if temperature else "",
                temperature.unit.value if temperature else "",
                session.heart_rate if session.heart_rate is not None else "",
                # Commas become semicolons so spreadsheet imports stay one column
                (session.notes or "").replace(",", ";"),
            ]
        )
    return buffer.getvalue()


def export_sessions_csv(sessions: Iterable[Session], directory: Path, today: Optional[datetime] = None) -> Path:
    """Write ``plunge-heat-sessions-YYYY-MM-DD.csv`` into ``directory``."""
    stamp = (today or datetime.now()).strftime("%Y-%m-%d")
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"plunge-heat-sessions-{stamp}.csv"
    path.write_text(sessions_to_csv(sessions), encoding="utf-8")
    logger.info(f"Exported sessions to {path}")
    return path
