"""Tick source: the 1 s clock that drives the tracker."""

import time
from typing import Callable

import aktiv.config as config
from aktiv.sources.base import BaseSource
from aktiv.state import Tick
from aktiv.tracker import StateTracker


class TickSource(BaseSource):
    name = "tick"
    interval = config.TICK_INTERVAL

    def __init__(self, tracker: StateTracker, clock: Callable[[], float] = time.time):
        super().__init__()
        self.tracker = tracker
        self._clock = clock

    def poll(self) -> None:
        self.tracker.dispatch(Tick(self._clock()))
