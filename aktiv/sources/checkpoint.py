"""Checkpoint source: periodic save, history flush and heartbeat.

Keeps every disk write off the tick thread. A crash loses at most one
checkpoint interval of counted time.
"""

import logging
import time

import aktiv.config as config
from aktiv.buffer import HistoryBuffer
from aktiv.db import Database
from aktiv.sources.base import BaseSource
from aktiv.store import DurationStore
from aktiv.tracker import StateTracker

log = logging.getLogger(__name__)


class CheckpointSource(BaseSource):
    name = "checkpoint"
    interval = config.CHECKPOINT_INTERVAL

    def __init__(
        self,
        tracker: StateTracker,
        store: DurationStore,
        buffer: HistoryBuffer,
        db: Database,
    ):
        super().__init__()
        self.tracker = tracker
        self.store = store
        self.buffer = buffer
        self.db = db
        self._last_heartbeat = 0.0

    def setup(self) -> None:
        self._last_heartbeat = time.time()

    def poll(self) -> None:
        self.store.save(self.tracker.durations())
        written = self.buffer.flush()
        if written:
            log.debug("checkpoint wrote %d history rows", written)

        now = time.time()
        if now - self._last_heartbeat >= config.HEALTH_HEARTBEAT_INTERVAL:
            d = self.tracker.durations()
            self.db.log_health(
                now, "heartbeat",
                f"screen={d.screen_on_time:.0f} total={d.total_uptime:.0f}",
            )
            self._last_heartbeat = now
