"""Sleep/wake edges from NSWorkspace notifications.

Notifications are delivered on the main run loop, so whoever registers the
observer must keep an AppKit event loop running (the menu bar app, or
AppHelper.runConsoleEventLoop in daemon mode).
"""

import logging

import AppKit
import objc
from Foundation import NSObject

from aktiv.state import SleepBegin, Wake
from aktiv.tracker import StateTracker

log = logging.getLogger(__name__)


class SleepWakeObserver(NSObject):
    def initWithTracker_(self, tracker):
        self = objc.super(SleepWakeObserver, self).init()
        if self is None:
            return None
        self._tracker = tracker
        return self

    def register(self) -> None:
        center = AppKit.NSWorkspace.sharedWorkspace().notificationCenter()
        center.addObserver_selector_name_object_(
            self, "willSleep:", AppKit.NSWorkspaceWillSleepNotification, None
        )
        center.addObserver_selector_name_object_(
            self, "didWake:", AppKit.NSWorkspaceDidWakeNotification, None
        )
        log.info("sleep/wake observer registered")

    def unregister(self) -> None:
        AppKit.NSWorkspace.sharedWorkspace().notificationCenter().removeObserver_(self)
        log.info("sleep/wake observer removed")

    @objc.typedSelector(b"v@:@")
    def willSleep_(self, _note):
        self._tracker.dispatch(SleepBegin())

    @objc.typedSelector(b"v@:@")
    def didWake_(self, _note):
        self._tracker.dispatch(Wake())


def make_observer(tracker: StateTracker) -> SleepWakeObserver:
    observer = SleepWakeObserver.alloc().initWithTracker_(tracker)
    observer.register()
    return observer
