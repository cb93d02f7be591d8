"""Pending power and sleep history, written to SQLite at each checkpoint.

The tracker records a row for every power change and every sleep/wake edge.
Those come from the tick thread and the AppKit main thread, and neither
should wait on disk, so rows queue here until the checkpoint thread, a full
queue, or shutdown writes them out with one batch insert per table.
"""

import logging
import threading
from dataclasses import dataclass

import aktiv.config as config
from aktiv.db import Database
from aktiv.state import AccumulatedDurations, PowerState

log = logging.getLogger(__name__)

_POWER_COLUMNS = ("timestamp", "power_state", "is_on_battery", "is_charging", "screen_on_time")
_SLEEP_COLUMNS = ("timestamp", "event_type", "screen_on_time", "total_uptime")


@dataclass(frozen=True)
class HistoryRow:
    table: str
    columns: tuple[str, ...]
    values: tuple

    @classmethod
    def power_change(cls, ts: float, power: PowerState, on_battery: bool,
                     charging: bool, screen_on_time: float) -> "HistoryRow":
        return cls("power_events", _POWER_COLUMNS,
                   (ts, power.value, int(on_battery), int(charging), screen_on_time))

    @classmethod
    def sleep_edge(cls, ts: float, event_type: str,
                   durations: AccumulatedDurations) -> "HistoryRow":
        """A ``sleep`` or ``wake`` row carrying the counters at the edge."""
        return cls("sleep_events", _SLEEP_COLUMNS,
                   (ts, event_type, durations.screen_on_time, durations.total_uptime))


class HistoryBuffer:
    def __init__(self, db: Database):
        self._db = db
        self._lock = threading.Lock()
        self._rows: list[HistoryRow] = []

    def push(self, row: HistoryRow) -> None:
        with self._lock:
            self._rows.append(row)
            if len(self._rows) >= config.BUFFER_MAX_SIZE:
                self._write_locked()

    def flush(self) -> int:
        """Write every pending row; returns how many landed."""
        with self._lock:
            return self._write_locked()

    def _write_locked(self) -> int:
        if not self._rows:
            return 0
        # Rows for one table share a column layout unless a caller built
        # them by hand, so key on both.
        batches: dict[tuple[str, tuple[str, ...]], list[tuple]] = {}
        for row in self._rows:
            batches.setdefault((row.table, row.columns), []).append(row.values)
        self._rows.clear()

        written = 0
        for (table, columns), values in batches.items():
            try:
                self._db.batch_insert(table, list(columns), values)
            except Exception:
                log.exception("dropped %d %s rows", len(values), table)
                continue
            written += len(values)
            log.debug("wrote %d %s rows", len(values), table)
        return written
