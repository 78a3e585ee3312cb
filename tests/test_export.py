"""Tests for CSV export."""

import tempfile
from datetime import datetime
from pathlib import Path

from plungeheat.export import export_sessions_csv, sessions_to_csv
from plungeheat.models import Session, SessionType, Temperature, TemperatureUnit


class TestCsvExport:
    """Tests for session CSV export."""

    def setup_method(self):
        self.sessions = [
            Session(
                SessionType.COLD_PLUNGE,
                180,
                timestamp=datetime(2026, 10, 21, 6, 30),
                temperature=Temperature(50),
                heart_rate=72,
                notes="felt great, calm",
            ),
            Session(
                SessionType.SAUNA,
                900.0,
                timestamp=datetime(2026, 10, 20, 19, 0),
                temperature=Temperature(80, TemperatureUnit.CELSIUS),
            ),
            Session(SessionType.COLD_PLUNGE, 95, timestamp=datetime(2026, 10, 19, 7, 0)),
        ]

    def test_header(self):
        lines = sessions_to_csv([]).splitlines()

        assert lines == ["Date,Type,Duration (seconds),Temperature,Unit,Heart Rate,Notes"]

    def test_rows(self):
        lines = sessions_to_csv(self.sessions).splitlines()

        assert lines[1] == "2026-10-21T06:30:00,Cold Plunge,180,50,F,72,felt great; calm"
        assert lines[2] == "2026-10-20T19:00:00,Sauna,900,80,C,,"
        assert lines[3] == "2026-10-19T07:00:00,Cold Plunge,95,,,,"

    def test_export_writes_dated_file(self):
        directory = Path(tempfile.mkdtemp()) / "exports"

        path = export_sessions_csv(self.sessions, directory, today=datetime(2026, 10, 21, 9, 0))

        assert path.name == "plunge-heat-sessions-2026-10-21.csv"
        assert path.read_text(encoding="utf-8") == sessions_to_csv(self.sessions)
