"""Configuration management for Plunge & Heat."""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "RelaySettings",
    "SyncSettings",
    "TrackerSettings",
    "setup_logging",
    "ROLE_PRIMARY",
    "ROLE_COMPANION",
    "DEFAULT_RELAY_URL",
    "OUTBOX_WARNING_SIZE",
]

logger = logging.getLogger(__name__)

APP_NAME = "Plunge & Heat"
APP_AUTHOR = "PlungeHeat"

ROLE_PRIMARY = "primary"
ROLE_COMPANION = "companion"

# Pairing relay between the phone and the companion device
DEFAULT_RELAY_URL = "http://127.0.0.1:8700/api/relay"

# Sync settings
DEFAULT_POLL_INTERVAL = 15  # seconds
DEFAULT_BATCH_SIZE = 50
MAX_BATCH_SIZE = 500
# Undelivered sessions are never dropped; these only trigger warnings
OUTBOX_WARNING_SIZE = 10000
STALLED_DELIVERY_RETRIES = 20


@dataclass
class RelaySettings:
    """Connection settings for the device pairing relay."""

    url: str = DEFAULT_RELAY_URL
    timeout: int = 10


@dataclass
class SyncSettings:
    """Companion sync configuration."""

    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL
    batch_size: int = DEFAULT_BATCH_SIZE
    outbox_warning_size: int = OUTBOX_WARNING_SIZE
    stalled_after_retries: int = STALLED_DELIVERY_RETRIES


@dataclass
class TrackerSettings:
    """Ledger behaviour."""

    temperature_unit: str = "F"  # "F" or "C", used for averages
    first_weekday: int = 0  # Monday


@dataclass
class Config:
    """Device identity, role and per-area settings."""

    device_id: Optional[str] = None
    role: str = ROLE_PRIMARY
    relay: RelaySettings = field(default_factory=RelaySettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    debug_mode: bool = False

    @property
    def is_primary(self) -> bool:
        return self.role != ROLE_COMPANION

    @classmethod
    def get_config_dir(cls) -> Path:
        """Directory holding config.json."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (ledger, outbox, summary)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_ledger_path(cls) -> Path:
        return cls.get_data_dir() / "ledger.db"

    @classmethod
    def get_log_dir(cls) -> Path:
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        return cls.get_config_dir() / "config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Read config.json; a missing or unreadable file yields defaults."""
        config_file = path or cls.get_config_file()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                return cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
        return cls()

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Build a Config from parsed JSON, tolerating partial files."""
        relay_data = data.pop("relay", {})
        sync_data = data.pop("sync", {})
        tracker_data = data.pop("tracker", {})

        if data.get("role") not in (ROLE_PRIMARY, ROLE_COMPANION):
            data["role"] = ROLE_PRIMARY

        sync = SyncSettings(**_known(SyncSettings, sync_data))
        sync.batch_size = max(1, min(sync.batch_size, MAX_BATCH_SIZE))

        tracker = TrackerSettings(**_known(TrackerSettings, tracker_data))
        if tracker.temperature_unit not in ("F", "C"):
            tracker.temperature_unit = "F"

        return cls(
            relay=RelaySettings(**_known(RelaySettings, relay_data)),
            sync=sync,
            tracker=tracker,
            **_known(cls, data),
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Write the config as JSON, creating its directory if needed."""
        config_file = path or self.get_config_file()
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Config saved to {config_file}")


def _known(klass, data: dict) -> dict:
    """Drop keys the dataclass does not declare (older or newer config files)."""
    return {k: v for k, v in data.items() if k in klass.__dataclass_fields__}


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "plungeheat.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # HTTP and scheduler internals only at warning level
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
