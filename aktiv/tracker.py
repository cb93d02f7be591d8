"""State tracker: turns ticks and sleep/wake edges into accumulated durations.

The tick handler is the only place that does duration math. Sleep and wake
edges just flip the sleep flag (wake also moves the tick baseline forward so
the sleep interval is never credited). Every mutation happens under one
lock, so edges from the AppKit main thread and ticks from the tick thread
never observe each other half-applied.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from aktiv.buffer import HistoryBuffer, HistoryRow
from aktiv.probe import FAIL_SAFE
from aktiv.state import (
    AccumulatedDurations,
    PowerState,
    ResetPolicy,
    SleepBegin,
    SleepState,
    Tick,
    TrackerSnapshot,
    Wake,
    classify_power,
)
from aktiv.store import DurationStore

log = logging.getLogger(__name__)

Probe = Callable[[], tuple[bool, bool]]


class StateTracker:
    """Owns the tracker state; all other components get snapshots."""

    def __init__(
        self,
        probe: Probe,
        durations: AccumulatedDurations | None = None,
        *,
        policy: ResetPolicy = ResetPolicy.PLUG_EDGE,
        clock: Callable[[], float] = time.time,
        max_gap: float | None = None,
        buffer: HistoryBuffer | None = None,
        store: DurationStore | None = None,
        save_on_edge: bool = False,
    ):
        self._probe = probe
        self._clock = clock
        self.policy = policy
        self.max_gap = max_gap
        self._buffer = buffer
        self._store = store
        self.save_on_edge = save_on_edge

        self._lock = threading.Lock()
        self._durations = durations.copy() if durations else AccumulatedDurations()
        self._power: PowerState | None = None  # None until the first tick
        self._charging = True
        self._sleep = SleepState.AWAKE
        self._last_tick: float | None = None
        self._wake_ts: float | None = None  # last wake no tick has passed yet

    # ── inbound ─────────────────────────────────────────────────────────

    def dispatch(self, message: Tick | SleepBegin | Wake) -> None:
        if isinstance(message, Tick):
            self.on_tick(message.now)
        elif isinstance(message, SleepBegin):
            self.on_sleep_begin(message.at)
        elif isinstance(message, Wake):
            self.on_wake(message.at)
        else:
            raise TypeError(f"unsupported tracker message: {message!r}")

    def on_tick(self, now: float) -> None:
        on_battery, charging = self._read_probe()
        power = classify_power(on_battery, charging)

        with self._lock:
            if self._wake_ts is not None and now <= self._wake_ts:
                # Stamped before a wake that landed while power was being
                # read; the wake baseline stays put.
                elapsed = 0.0
            else:
                elapsed = self._elapsed_locked(now)
                self._last_tick = now
                self._wake_ts = None

            previous = self._power
            self._power = power
            self._charging = charging

            if self._should_reset(previous, power) and self._durations.screen_on_time:
                log.info(
                    "screen-on time reset (%s) after %.0fs",
                    self.policy.value, self._durations.screen_on_time,
                )
                self._durations.screen_on_time = 0.0

            self._durations.total_uptime += elapsed
            if self._sleep is SleepState.AWAKE and power is PowerState.UNPLUGGED:
                self._durations.screen_on_time += elapsed
            screen = self._durations.screen_on_time

        if power is not previous:
            log.info(
                "power state %s -> %s",
                previous.value if previous else "unknown", power.value,
            )
            self._record(HistoryRow.power_change(now, power, on_battery, charging, screen))

    def on_sleep_begin(self, at: float | None = None) -> None:
        ts = self._clock() if at is None else at
        with self._lock:
            if self._sleep is SleepState.ASLEEP:
                return
            self._sleep = SleepState.ASLEEP
            durations = self._durations.copy()

        log.info("system going to sleep")
        self._on_edge("sleep", ts, durations)

    def on_wake(self, at: float | None = None) -> None:
        ts = self._clock() if at is None else at
        with self._lock:
            was_asleep = self._sleep is SleepState.ASLEEP
            self._sleep = SleepState.AWAKE
            # Always move the baseline, even if the sleep edge was missed
            self._last_tick = ts
            self._wake_ts = ts
            durations = self._durations.copy()

        if was_asleep:
            log.info("system woke up")
            self._on_edge("wake", ts, durations)

    # ── outbound ────────────────────────────────────────────────────────

    def snapshot(self) -> TrackerSnapshot:
        with self._lock:
            return TrackerSnapshot(
                power_state=self._power,
                sleep_state=self._sleep,
                durations=self._durations.copy(),
                last_tick_ts=self._last_tick,
                charging=self._charging,
            )

    def durations(self) -> AccumulatedDurations:
        with self._lock:
            return self._durations.copy()

    def reset(self) -> None:
        """Zero both counters."""
        with self._lock:
            self._durations = AccumulatedDurations()
        log.info("durations reset")

    # ── internal ────────────────────────────────────────────────────────

    def _read_probe(self) -> tuple[bool, bool]:
        try:
            on_battery, charging = self._probe()
        except Exception:
            log.exception("power probe raised, treating as plugged in")
            return FAIL_SAFE
        return bool(on_battery), bool(charging)

    def _elapsed_locked(self, now: float) -> float:
        if self._last_tick is None:
            return 0.0
        elapsed = now - self._last_tick
        if elapsed < 0:
            log.warning("clock moved back %.1fs, ignoring interval", -elapsed)
            return 0.0
        if self.max_gap is not None and elapsed > self.max_gap:
            log.info("%.0fs gap since last tick, treating as sleep", elapsed)
            return 0.0
        return elapsed

    def _should_reset(self, previous: PowerState | None, power: PowerState) -> bool:
        if self.policy is ResetPolicy.WHILE_PLUGGED:
            return power is PowerState.CHARGING_OR_PLUGGED
        if self.policy is ResetPolicy.UNPLUG_EDGE:
            return (previous is PowerState.CHARGING_OR_PLUGGED
                    and power is PowerState.UNPLUGGED)
        # PLUG_EDGE: a plugged first reading counts as a plug-in
        return (previous is not PowerState.CHARGING_OR_PLUGGED
                and power is PowerState.CHARGING_OR_PLUGGED)

    def _on_edge(self, event_type: str, ts: float, durations: AccumulatedDurations) -> None:
        self._record(HistoryRow.sleep_edge(ts, event_type, durations))
        if self.save_on_edge and self._store is not None:
            self._store.save(durations)

    def _record(self, row: HistoryRow) -> None:
        if self._buffer is not None:
            self._buffer.push(row)
