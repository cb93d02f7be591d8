"""Base source ABC: periodic background threads that feed the daemon."""

from __future__ import annotations

import abc
import logging
import threading

log = logging.getLogger(__name__)


class BaseSource(abc.ABC):
    """Abstract base for periodic sources.

    Subclasses must implement:
        name       : unique string identifier
        interval   : seconds between polls
        poll()     : one cycle of work
    """

    name: str = ""
    interval: float = 1.0

    def __init__(self):
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    # ── abstract ────────────────────────────────────────────────────────
    @abc.abstractmethod
    def poll(self) -> None:
        """Run one cycle."""

    # ── lifecycle ───────────────────────────────────────────────────────
    def setup(self) -> None:
        """Optional one-time init (override in subclass)."""

    def teardown(self) -> None:
        """Optional cleanup (override in subclass)."""

    def start(self) -> None:
        """Start the source in a background daemon thread."""
        self.setup()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name=f"source-{self.name}", daemon=True
        )
        self._thread.start()
        log.info("[%s] started (interval=%.1fs)", self.name, self.interval)

    def stop(self) -> None:
        """Signal the source to stop and wait for its thread."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=self.interval + 2)
        self._thread = None
        self.teardown()
        log.info("[%s] stopped", self.name)

    @property
    def running(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    # ── internal ────────────────────────────────────────────────────────
    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                log.exception("[%s] poll error", self.name)
            self._stop_event.wait(timeout=self.interval)
