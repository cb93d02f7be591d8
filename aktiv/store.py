"""Duration persistence: loads and saves the two tracker counters."""

import logging
import sqlite3
import time

from aktiv.db import Database
from aktiv.state import SCREEN_ON_KEY, TOTAL_UPTIME_KEY, AccumulatedDurations

log = logging.getLogger(__name__)


class DurationStore:
    """Best-effort persistence for AccumulatedDurations.

    Neither method raises: a broken store degrades to zeroed counters on
    load and a logged, skipped write on save.
    """

    def __init__(self, db: Database):
        self.db = db

    def load(self) -> AccumulatedDurations:
        try:
            values = self.db.get_values([SCREEN_ON_KEY, TOTAL_UPTIME_KEY])
        except (sqlite3.Error, RuntimeError):
            log.exception("could not load durations, starting from zero")
            return AccumulatedDurations()

        screen = max(values.get(SCREEN_ON_KEY, 0.0), 0.0)
        total = max(values.get(TOTAL_UPTIME_KEY, 0.0), 0.0)
        if screen > total:
            log.info("stored totalUptime %.0fs below screenOnTime %.0fs, raising it", total, screen)
            total = screen
        durations = AccumulatedDurations(screen_on_time=screen, total_uptime=total)
        log.info("loaded durations: screen=%.0fs total=%.0fs", screen, total)
        return durations

    def save(self, durations: AccumulatedDurations) -> bool:
        """Write both counters atomically. Returns False if the write failed."""
        try:
            self.db.put_values(durations.as_items(), time.time())
        except (sqlite3.Error, RuntimeError):
            log.exception("could not save durations")
            return False
        log.debug(
            "saved durations: screen=%.0fs total=%.0fs",
            durations.screen_on_time, durations.total_uptime,
        )
        return True
