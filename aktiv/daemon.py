"""aktiv daemon: owns the tracker and everything that feeds or persists it.

Startup loads the counters, builds the tracker, and starts the tick and
checkpoint threads. Shutdown stops the tick thread first, then does the
final save, so the saved value is the last value the tracker will ever have.

On macOS, sleep/wake edges come from NSWorkspace and need the main thread
to run an AppKit event loop; elsewhere the tracker's gap detection is the
only sleep signal.
"""

import logging
import os
import signal
import sys
import threading
import time

import aktiv.config as config
from aktiv.buffer import HistoryBuffer
from aktiv.db import Database
from aktiv.probe import PmsetProbe
from aktiv.sources.checkpoint import CheckpointSource
from aktiv.sources.tick import TickSource
from aktiv.state import ResetPolicy
from aktiv.store import DurationStore
from aktiv.tracker import StateTracker

log = logging.getLogger("aktiv")


def _setup_logging() -> None:
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(str(config.LOG_PATH)),
            logging.StreamHandler(sys.stderr),
        ],
    )


def read_pid() -> int | None:
    if config.PID_PATH.exists():
        try:
            return int(config.PID_PATH.read_text().strip())
        except ValueError:
            pass
    return None


def _wait_for_exit(pid: int, timeout: float) -> bool:
    """Poll until *pid* is gone. False if it outlived *timeout*."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        if time.monotonic() >= deadline:
            return False
        time.sleep(0.1)


def _claim_pid() -> None:
    """Single-instance guard: stop a previous instance and wait for its final save."""
    old_pid = read_pid()
    if old_pid and old_pid != os.getpid():
        try:
            os.kill(old_pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError):
            pass
        else:
            log.info("asked previous instance (pid=%d) to exit", old_pid)
            if not _wait_for_exit(old_pid, config.PID_HANDOFF_TIMEOUT):
                log.warning(
                    "previous instance (pid=%d) still running after %.0fs",
                    old_pid, config.PID_HANDOFF_TIMEOUT,
                )
    config.PID_PATH.write_text(str(os.getpid()))


def _remove_pid() -> None:
    if read_pid() == os.getpid():
        config.PID_PATH.unlink(missing_ok=True)


class Daemon:
    """Builds the tracker from stored counters and tears it down with a final save."""

    def __init__(self, db: Database | None = None, probe=None,
                 policy: ResetPolicy | None = None):
        self.db = db or Database()
        self.probe = probe or PmsetProbe()
        self.policy = policy or ResetPolicy.from_name(config.RESET_POLICY)
        self.buffer: HistoryBuffer | None = None
        self.store: DurationStore | None = None
        self.tracker: StateTracker | None = None
        self.sources = []
        self._lock = threading.Lock()
        self._running = False
        self._stop_requested = threading.Event()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> StateTracker:
        _setup_logging()
        _claim_pid()
        log.info("aktiv starting (pid=%d, reset policy=%s)", os.getpid(), self.policy.value)

        self.db.open()
        self.buffer = HistoryBuffer(self.db)
        self.store = DurationStore(self.db)
        self.tracker = StateTracker(
            self.probe,
            self.store.load(),
            policy=self.policy,
            max_gap=config.SLEEP_GAP_SECONDS,
            buffer=self.buffer,
            store=self.store,
            save_on_edge=config.SAVE_ON_EDGE,
        )
        self.db.log_health(time.time(), "startup", f"pid={os.getpid()}")

        self.sources = [
            TickSource(self.tracker),
            CheckpointSource(self.tracker, self.store, self.buffer, self.db),
        ]
        for source in self.sources:
            source.start()

        self._running = True
        return self.tracker

    def stop(self) -> None:
        """Stop sources, save, flush and close. Safe to call more than once."""
        with self._lock:
            if not self._running:
                return
            self._running = False

        log.info("aktiv shutting down")
        for source in self.sources:
            source.stop()
        self.sources.clear()

        durations = self.tracker.durations()
        if not self.store.save(durations):
            log.error("final save failed, last checkpoint kept")
        self.buffer.flush()
        try:
            self.db.log_health(
                time.time(), "shutdown",
                f"screen={durations.screen_on_time:.0f} total={durations.total_uptime:.0f}",
            )
        except Exception:
            log.exception("could not record shutdown")
        self.db.close()
        _remove_pid()
        log.info("aktiv stopped")

    def reset(self) -> None:
        """Zero both counters in the live tracker and persist the zeros."""
        with self._lock:
            if not self._running:
                return
            self.tracker.reset()
            if not self.store.save(self.tracker.durations()):
                log.error("reset not saved, next checkpoint will retry")
            self.db.log_health(time.time(), "reset")

    def handle_reset_signal(self, signum, frame) -> None:
        # The main thread may hold the tracker lock mid-edge; reset elsewhere.
        log.info("received signal %d, resetting counters", signum)
        threading.Thread(target=self.reset, name="aktiv-reset", daemon=True).start()

    def run(self) -> None:
        """Start, block until a signal arrives, then stop."""
        self.start()
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGUSR1, self.handle_reset_signal)
        try:
            if sys.platform == "darwin":
                self._run_event_loop()
            else:
                log.info("no sleep/wake notifications on %s, using tick gaps", sys.platform)
                while not self._stop_requested.wait(timeout=1.0):
                    pass
        finally:
            self.stop()

    def _run_event_loop(self) -> None:
        from PyObjCTools import AppHelper

        from aktiv.sources.workspace import make_observer

        observer = make_observer(self.tracker)
        try:
            AppHelper.runConsoleEventLoop(installInterrupt=True)
        finally:
            observer.unregister()

    def _handle_signal(self, signum, frame) -> None:
        log.info("received signal %d", signum)
        self._stop_requested.set()
        if sys.platform == "darwin":
            from PyObjCTools import AppHelper

            AppHelper.stopEventLoop()


def main() -> None:
    Daemon().run()


if __name__ == "__main__":
    main()
