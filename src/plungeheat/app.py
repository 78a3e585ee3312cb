"""Plunge & Heat - background ledger and companion sync runner."""

import logging
import os
import signal
import sys
import threading
import uuid
from pathlib import Path
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from . import __version__
from .config import Config, setup_logging
from .credentials import PairingStore
from .persistence import SQLitePersistence
from .sync import DeviceChannel, Outbox, RelayClient, SyncCoordinator
from .tracker import Tracker

__all__ = ["PlungeHeatApp", "LedgerLock", "LedgerLocked", "main"]

logger = logging.getLogger(__name__)

PROBE_INTERVAL_SECONDS = 60


class PlungeHeatApp:
    """Builds the ledger and the sync channel and keeps them ticking."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config.load()

        self.pairing = PairingStore()
        credentials = self.pairing.load()
        if credentials is not None:
            self.config.device_id = credentials.device_id
        if not self.config.device_id:
            self.config.device_id = uuid.uuid4().hex
            self.config.save()

        self.persistence = SQLitePersistence()
        self.tracker = Tracker(self.persistence, config=self.config)

        self.outbox = Outbox(warning_size=self.config.sync.outbox_warning_size)
        self.relay = RelayClient(
            api_url=self.config.relay.url,
            token=credentials.token if credentials else None,
            device_id=self.config.device_id,
            role=self.config.role,
            timeout=self.config.relay.timeout,
        )
        self.channel = DeviceChannel(
            self.relay,
            self.outbox,
            batch_size=self.config.sync.batch_size,
            flush_trigger=self.trigger_flush,
        )
        self.coordinator = SyncCoordinator(
            self.channel,
            self.tracker.store,
            self.tracker.streaks,
            submit=self.tracker.submit,
            is_primary=self.config.is_primary,
            summary=self.tracker.summary,
            bus=self.tracker.bus,
        )

        self.scheduler = BackgroundScheduler()
        self._shutdown_done = False
        self._shutdown_event = threading.Event()

    # -- lifecycle --------------------------------------------------------

    def start(self) -> None:
        """Load the ledger, bring up the channel and start the scheduler."""
        self.tracker.start()
        if not self.coordinator.start():
            logger.warning("Companion sync unavailable, will retry activation")

        self.scheduler.add_job(
            self._poll,
            trigger=IntervalTrigger(seconds=self.config.sync.poll_interval_seconds),
            id="poll_job",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self._probe_and_flush,
            trigger=IntervalTrigger(seconds=PROBE_INTERVAL_SECONDS),
            id="probe_job",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self._report_stalled_outbox,
            trigger=IntervalTrigger(hours=24),
            id="outbox_report_job",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            f"Plunge & Heat {__version__} running as {self.config.role} "
            f"(poll interval: {self.config.sync.poll_interval_seconds}s)"
        )

    def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        self.start()
        try:
            self._shutdown_event.wait()
        finally:
            self._shutdown()

    def trigger_flush(self) -> None:
        """Schedule a one-off outbox flush off the ledger thread."""
        if self.scheduler.running:
            self.scheduler.add_job(self._flush, id="immediate_flush", replace_existing=True)

    # -- jobs -------------------------------------------------------------

    def _poll(self) -> None:
        try:
            self.channel.poll()
        except Exception:
            logger.exception("Inbox poll failed")

    def _probe_and_flush(self) -> None:
        try:
            if not self.channel.is_activated:
                self.channel.activate()
                return
            if self.channel.probe():
                self.channel.flush()
        except Exception:
            logger.exception("Reachability probe failed")

    def _flush(self) -> None:
        try:
            self.channel.flush()
        except Exception:
            logger.exception("Outbox flush failed")

    def _report_stalled_outbox(self) -> int:
        """Warn about events that keep failing. They stay queued regardless."""
        try:
            stalled = self.outbox.count_stalled(self.config.sync.stalled_after_retries)
        except Exception as e:
            logger.debug(f"Failed to inspect outbox: {e}")
            return 0
        if stalled:
            logger.warning(
                f"{stalled} events have failed delivery "
                f"{self.config.sync.stalled_after_retries}+ times and are still queued"
            )
        return stalled

    # -- shutdown ---------------------------------------------------------

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signum}")
        self._shutdown_event.set()

    def _shutdown(self) -> None:
        """Shutdown the application. Safe to call multiple times."""
        if self._shutdown_done:
            return
        self._shutdown_done = True
        logger.info("Shutting down...")

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.channel.deactivate()
        self.tracker.shutdown()
        self.relay.close()
        self.outbox.close()
        self.persistence.close()

        logger.info("Shutdown complete")

    def __enter__(self) -> "PlungeHeatApp":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._shutdown()


class LedgerLocked(Exception):
    """Another process already holds the ledger."""

    def __init__(self, path: Path, pid: Optional[int] = None):
        self.path = path
        self.pid = pid
        holder = f" by pid {pid}" if pid else ""
        super().__init__(f"Ledger at {path} is locked{holder}")


if sys.platform == "win32":
    import msvcrt

    def _lock(handle) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock(handle) -> None:
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock(handle) -> None:
        fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock(handle) -> None:
        fcntl.flock(handle, fcntl.LOCK_UN)


class LedgerLock:
    """Advisory lock beside the ledger database.

    Only one process may write a given ledger; the holder's pid is kept
    in the lock file so a second instance can say who owns it.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.path = db_path.with_name(db_path.name + ".lock")
        self._handle = None

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def holder(self) -> Optional[int]:
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    def acquire(self) -> bool:
        if self._handle is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.path, "a+")  # noqa: SIM115
        try:
            _lock(handle)
        except OSError:
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        logger.debug(f"Holding ledger lock {self.path}")
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            _unlock(handle)
        except OSError as e:
            logger.debug(f"Failed to release ledger lock: {e}")
        finally:
            handle.close()

    def __enter__(self) -> "LedgerLock":
        if not self.acquire():
            raise LedgerLocked(self.db_path, self.holder())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def main() -> None:
    """Main entry point."""
    config = Config.load()
    setup_logging(config.debug_mode)

    try:
        with LedgerLock(Config.get_ledger_path()):
            with PlungeHeatApp(config) as app:
                app.run()
    except LedgerLocked as e:
        print(f"Plunge & Heat is already running ({e}).")
        sys.exit(0)


if __name__ == "__main__":
    main()
