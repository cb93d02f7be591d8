"""Tests for the state tracker: accumulation, resets, sleep/wake, concurrency."""

import logging
import random
import threading

import pytest

from aktiv.buffer import HistoryBuffer
from aktiv.db import Database
from aktiv.state import (
    AccumulatedDurations,
    PowerState,
    ResetPolicy,
    SleepBegin,
    SleepState,
    Tick,
    Wake,
)
from aktiv.store import DurationStore
from aktiv.tracker import StateTracker

UNPLUGGED = (True, False)
CHARGING = (False, True)
AC_NOT_CHARGING = (False, False)


class FakePower:
    """Returns whatever reading the test sets; raises if given an exception."""

    def __init__(self, reading=UNPLUGGED):
        self.reading = reading
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if isinstance(self.reading, Exception):
            raise self.reading
        return self.reading


@pytest.fixture
def db(tmp_path):
    d = Database(path=tmp_path / "test.db")
    d.open()
    yield d
    d.close()


@pytest.fixture
def buf(db):
    return HistoryBuffer(db)


class TestScenario:
    def test_unplug_sleep_wake_replug(self):
        """Walk through unplugged use, a nap, more use, then plugging in."""
        power = FakePower(UNPLUGGED)
        t = StateTracker(power)

        t.on_tick(0)
        t.on_tick(60)
        d = t.durations()
        assert (d.screen_on_time, d.total_uptime) == (60, 60)

        t.on_sleep_begin()
        t.on_tick(120)
        d = t.durations()
        assert (d.screen_on_time, d.total_uptime) == (60, 120)

        t.on_wake(at=120)
        t.on_tick(150)
        d = t.durations()
        assert (d.screen_on_time, d.total_uptime) == (90, 150)

        power.reading = CHARGING
        t.on_tick(180)
        d = t.durations()
        assert (d.screen_on_time, d.total_uptime) == (0, 180)

    def test_same_scenario_through_dispatch(self):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power)
        for msg in (Tick(0), Tick(60), SleepBegin(), Tick(120), Wake(120), Tick(150)):
            t.dispatch(msg)
        assert t.durations() == AccumulatedDurations(90, 150)


class TestAccumulation:
    def test_first_tick_adds_nothing(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(1000)
        assert t.durations() == AccumulatedDurations(0, 0)

    def test_total_is_sum_of_intervals_regardless_of_state(self):
        """Total uptime ignores power and sleep state for increasing ticks."""
        rng = random.Random(7)
        power = FakePower()
        t = StateTracker(power)
        now = 0.0
        t.on_tick(now)
        expected = 0.0
        for _ in range(300):
            power.reading = rng.choice([UNPLUGGED, CHARGING, AC_NOT_CHARGING])
            if rng.random() < 0.1:
                t.on_sleep_begin()
            step = rng.uniform(0.5, 5.0)
            now += step
            expected += step
            t.on_tick(now)
        assert t.durations().total_uptime == pytest.approx(expected)

    def test_screen_never_exceeds_total(self):
        rng = random.Random(11)
        power = FakePower()
        t = StateTracker(power)
        now = 0.0
        for _ in range(500):
            r = rng.random()
            if r < 0.05:
                t.on_sleep_begin(now)
            elif r < 0.1:
                t.on_wake(now)
            else:
                power.reading = rng.choice([UNPLUGGED, UNPLUGGED, CHARGING])
                t.on_tick(now)
            now += rng.uniform(0.1, 3.0)
            d = t.durations()
            assert d.screen_on_time <= d.total_uptime

    def test_asleep_interval_adds_no_screen_time(self):
        for reading in (UNPLUGGED, CHARGING, AC_NOT_CHARGING):
            t = StateTracker(FakePower(reading), AccumulatedDurations(5, 5))
            t.on_tick(0)
            t.on_sleep_begin()
            t.on_tick(100)
            assert t.durations().screen_on_time == (5 if reading == UNPLUGGED else 0)
            assert t.durations().total_uptime == 105

    def test_plugged_not_charging_adds_no_screen_time(self):
        t = StateTracker(FakePower(AC_NOT_CHARGING))
        t.on_tick(0)
        t.on_tick(30)
        assert t.durations() == AccumulatedDurations(0, 30)

    def test_loaded_durations_keep_growing(self):
        t = StateTracker(FakePower(UNPLUGGED), AccumulatedDurations(100, 200))
        t.on_tick(0)
        t.on_tick(10)
        assert t.durations() == AccumulatedDurations(110, 210)


class TestClockAnomalies:
    def test_backward_clock_is_clamped(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(100)
        t.on_tick(50)
        assert t.durations() == AccumulatedDurations(0, 0)
        t.on_tick(60)  # baseline is now 50
        assert t.durations() == AccumulatedDurations(10, 10)

    def test_large_gap_treated_as_sleep_when_enabled(self):
        t = StateTracker(FakePower(UNPLUGGED), max_gap=30)
        t.on_tick(0)
        t.on_tick(10)
        t.on_tick(500)
        assert t.durations() == AccumulatedDurations(10, 10)
        t.on_tick(501)
        assert t.durations() == AccumulatedDurations(11, 11)

    def test_gap_detection_off_by_default(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(0)
        t.on_tick(500)
        assert t.durations().total_uptime == 500


class TestResetPolicies:
    def test_plug_edge_resets_screen_not_total(self):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power)
        t.on_tick(0)
        t.on_tick(40)
        power.reading = CHARGING
        t.on_tick(50)
        assert t.durations() == AccumulatedDurations(0, 50)

    def test_unplug_does_not_reset_total(self):
        power = FakePower(CHARGING)
        t = StateTracker(power, AccumulatedDurations(0, 500))
        t.on_tick(0)
        power.reading = UNPLUGGED
        t.on_tick(10)
        t.on_tick(20)
        assert t.durations().total_uptime == 520
        assert t.durations().screen_on_time == 20

    def test_plug_edge_first_reading_plugged_resets(self):
        """Charged while we weren't running: the stored screen time is stale."""
        t = StateTracker(FakePower(CHARGING), AccumulatedDurations(100, 200))
        t.on_tick(0)
        assert t.durations() == AccumulatedDurations(0, 200)

    def test_plug_edge_first_reading_unplugged_keeps(self):
        t = StateTracker(FakePower(UNPLUGGED), AccumulatedDurations(100, 200))
        t.on_tick(0)
        assert t.durations() == AccumulatedDurations(100, 200)

    def test_ticks_while_plugged_only_grow_total(self):
        power = FakePower(CHARGING)
        t = StateTracker(power)
        t.on_tick(0)
        for ts in range(1, 5):
            t.on_tick(ts)
        assert t.durations() == AccumulatedDurations(0, 4)

    def test_while_plugged_resets_every_plugged_tick(self):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power, policy=ResetPolicy.WHILE_PLUGGED)
        t.on_tick(0)
        t.on_tick(30)
        power.reading = CHARGING
        t.on_tick(40)
        assert t.durations() == AccumulatedDurations(0, 40)

    def test_unplug_edge_resets_on_unplug(self):
        power = FakePower(CHARGING)
        t = StateTracker(power, AccumulatedDurations(100, 100),
                         policy=ResetPolicy.UNPLUG_EDGE)
        t.on_tick(0)
        t.on_tick(10)
        assert t.durations() == AccumulatedDurations(100, 110)
        power.reading = UNPLUGGED
        t.on_tick(20)
        assert t.durations() == AccumulatedDurations(10, 120)

    def test_unplug_edge_keeps_time_when_plugged_in(self):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power, policy=ResetPolicy.UNPLUG_EDGE)
        t.on_tick(0)
        t.on_tick(30)
        power.reading = CHARGING
        t.on_tick(40)
        assert t.durations() == AccumulatedDurations(30, 40)


class TestSleepWake:
    def test_double_sleep_same_as_single(self):
        a = StateTracker(FakePower(UNPLUGGED))
        b = StateTracker(FakePower(UNPLUGGED))
        for t in (a, b):
            t.on_tick(0)
        a.on_sleep_begin(at=5)
        b.on_sleep_begin(at=5)
        b.on_sleep_begin(at=6)
        for t in (a, b):
            t.on_tick(10)
        assert a.snapshot() == b.snapshot()

    def test_wake_moves_baseline(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(0)
        t.on_sleep_begin(at=1)
        t.on_wake(at=3600)
        t.on_tick(3601)
        assert t.durations() == AccumulatedDurations(1, 1)

    def test_wake_without_sleep_still_moves_baseline(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(0)
        t.on_wake(at=900)
        t.on_tick(901)
        assert t.durations() == AccumulatedDurations(1, 1)
        assert t.snapshot().sleep_state is SleepState.AWAKE

    def test_wake_during_power_read_keeps_baseline(self, caplog):
        """A tick stamped before a wake must not drag the baseline back."""
        woke = []

        def reading():
            if t.snapshot().sleep_state is SleepState.ASLEEP:
                t.on_wake(at=5000)
                woke.append(True)
            return UNPLUGGED

        t = StateTracker(reading)
        t.on_tick(0)
        t.on_tick(10)
        t.on_sleep_begin(at=10.5)
        with caplog.at_level(logging.INFO, logger="aktiv.tracker"):
            t.on_tick(11)
            assert woke == [True]
            assert t.snapshot().last_tick_ts == 5000
            t.on_tick(5001)
        assert t.durations() == AccumulatedDurations(11, 11)
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_wake_defaults_to_clock(self):
        t = StateTracker(FakePower(UNPLUGGED), clock=lambda: 42.0)
        t.on_wake()
        assert t.snapshot().last_tick_ts == 42.0

    def test_edges_recorded_once(self, buf, db):
        t = StateTracker(FakePower(UNPLUGGED), buffer=buf)
        t.on_sleep_begin(at=1)
        t.on_sleep_begin(at=2)
        t.on_wake(at=3)
        t.on_wake(at=4)
        buf.flush()

        cur = db._ensure_conn().execute(
            "SELECT timestamp, event_type FROM sleep_events ORDER BY id"
        )
        assert cur.fetchall() == [(1.0, "sleep"), (3.0, "wake")]

    def test_save_on_edge(self, db):
        store = DurationStore(db)
        t = StateTracker(FakePower(UNPLUGGED), store=store, save_on_edge=True)
        t.on_tick(0)
        t.on_tick(25)
        t.on_sleep_begin(at=26)
        assert store.load() == AccumulatedDurations(25, 25)

    def test_no_save_on_edge_when_disabled(self, db):
        store = DurationStore(db)
        t = StateTracker(FakePower(UNPLUGGED), store=store, save_on_edge=False)
        t.on_tick(0)
        t.on_tick(25)
        t.on_sleep_begin(at=26)
        assert store.load() == AccumulatedDurations(0, 0)


class TestPowerReadFailure:
    def test_raising_reader_is_treated_as_plugged(self):
        power = FakePower(RuntimeError("IOKit went away"))
        t = StateTracker(power, AccumulatedDurations(50, 50))
        t.on_tick(0)
        t.on_tick(10)
        snap = t.snapshot()
        assert snap.power_state is PowerState.CHARGING_OR_PLUGGED
        assert snap.durations == AccumulatedDurations(0, 60)

    def test_power_read_once_per_tick(self):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power)
        for ts in range(5):
            t.on_tick(ts)
        t.on_sleep_begin()
        t.on_wake()
        assert power.calls == 5


class TestPowerHistory:
    def test_power_changes_recorded(self, buf, db):
        power = FakePower(UNPLUGGED)
        t = StateTracker(power, buffer=buf)
        t.on_tick(0)
        t.on_tick(1)
        power.reading = CHARGING
        t.on_tick(2)
        t.on_tick(3)
        buf.flush()

        cur = db._ensure_conn().execute(
            "SELECT timestamp, power_state, is_on_battery, is_charging FROM power_events ORDER BY id"
        )
        assert cur.fetchall() == [
            (0.0, "unplugged", 1, 0),
            (2.0, "charging_or_plugged", 0, 1),
        ]


class TestSnapshot:
    def test_before_first_tick(self):
        snap = StateTracker(FakePower()).snapshot()
        assert snap.power_state is None
        assert snap.sleep_state is SleepState.AWAKE
        assert snap.last_tick_ts is None

    def test_snapshot_is_a_copy(self):
        t = StateTracker(FakePower(UNPLUGGED))
        t.on_tick(0)
        t.on_tick(10)
        snap = t.snapshot()
        snap.durations.screen_on_time = 9999
        assert t.durations().screen_on_time == 10

    def test_charging_flag_follows_reading(self):
        power = FakePower(AC_NOT_CHARGING)
        t = StateTracker(power)
        t.on_tick(0)
        assert t.snapshot().charging is False
        power.reading = CHARGING
        t.on_tick(1)
        assert t.snapshot().charging is True

    def test_reset_zeroes_both(self):
        t = StateTracker(FakePower(UNPLUGGED), AccumulatedDurations(10, 20))
        t.reset()
        assert t.durations() == AccumulatedDurations(0, 0)

    def test_dispatch_rejects_unknown_message(self):
        t = StateTracker(FakePower())
        with pytest.raises(TypeError, match="unsupported"):
            t.dispatch("tick")


class TestConcurrency:
    def test_edges_and_ticks_from_many_threads(self):
        """Hammer ticks and edges concurrently; counters stay consistent."""
        t = StateTracker(FakePower(UNPLUGGED))
        errors = []
        counter = iter(range(10**9))
        counter_lock = threading.Lock()

        def next_ts():
            with counter_lock:
                return float(next(counter))

        def ticker():
            try:
                for _ in range(500):
                    t.on_tick(next_ts())
            except Exception as exc:
                errors.append(exc)

        def edger():
            try:
                for i in range(200):
                    if i % 2:
                        t.on_sleep_begin()
                    else:
                        t.on_wake(next_ts())
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=ticker) for _ in range(3)]
        threads += [threading.Thread(target=edger) for _ in range(2)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()

        assert errors == []
        d = t.durations()
        assert 0 <= d.screen_on_time <= d.total_uptime
