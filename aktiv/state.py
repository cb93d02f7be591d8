"""Tracker data model: power/sleep states, counters, snapshots, messages."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

SCREEN_ON_KEY = "screenOnTime"
TOTAL_UPTIME_KEY = "totalUptime"


class PowerState(enum.Enum):
    UNPLUGGED = "unplugged"
    CHARGING_OR_PLUGGED = "charging_or_plugged"


class SleepState(enum.Enum):
    AWAKE = "awake"
    ASLEEP = "asleep"


class ResetPolicy(enum.Enum):
    """When screen-on time is zeroed. Total uptime is never reset."""

    PLUG_EDGE = "plug_edge"          # unplugged -> plugged (and a plugged first reading)
    WHILE_PLUGGED = "while_plugged"  # every plugged tick
    UNPLUG_EDGE = "unplug_edge"      # plugged -> unplugged

    @classmethod
    def from_name(cls, name: str) -> ResetPolicy:
        try:
            return cls(name.strip().lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValueError(f"unknown reset policy: {name!r} (expected one of {valid})") from None


def classify_power(is_on_battery: bool, is_charging: bool) -> PowerState:
    """Collapse a raw probe reading into one of the two power states.

    Anything other than "on battery and not charging" counts as plugged,
    so an ambiguous reading can only undercount battery time.
    """
    if is_on_battery and not is_charging:
        return PowerState.UNPLUGGED
    return PowerState.CHARGING_OR_PLUGGED


@dataclass
class AccumulatedDurations:
    """Screen-on and total tracked time, in seconds."""
    screen_on_time: float = 0.0
    total_uptime: float = 0.0

    def copy(self) -> AccumulatedDurations:
        return AccumulatedDurations(self.screen_on_time, self.total_uptime)

    def as_items(self) -> dict[str, float]:
        return {
            SCREEN_ON_KEY: float(self.screen_on_time),
            TOTAL_UPTIME_KEY: float(self.total_uptime),
        }


@dataclass(frozen=True)
class TrackerSnapshot:
    """Read-only copy of the tracker's state, safe to hand to other threads."""
    power_state: PowerState | None  # None before the first tick
    sleep_state: SleepState
    durations: AccumulatedDurations = field(default_factory=AccumulatedDurations)
    last_tick_ts: float | None = None
    charging: bool = True


# ── Inbound messages ──────────────────────────────────────────────────

@dataclass(frozen=True)
class Tick:
    now: float


@dataclass(frozen=True)
class SleepBegin:
    at: float | None = None


@dataclass(frozen=True)
class Wake:
    at: float | None = None
