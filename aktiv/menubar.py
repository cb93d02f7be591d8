"""aktiv menu bar: status item showing screen-on time since unplugging."""

import signal

import AppKit
import objc
from Foundation import NSObject, NSTimer
from PyObjCTools import AppHelper

from aktiv.daemon import Daemon
from aktiv.format import menu_lines, status_title
from aktiv.sources.workspace import make_observer

_REFRESH_INTERVAL = 1.0


def _info_item(title):
    item = AppKit.NSMenuItem.alloc().initWithTitle_action_keyEquivalent_(title, None, "")
    item.setEnabled_(False)
    return item


class StatusBarController(NSObject):
    def initWithDaemon_(self, daemon):
        self = objc.super(StatusBarController, self).init()
        if self is None:
            return None

        self._daemon = daemon
        self._tracker = daemon.tracker

        self._item = AppKit.NSStatusBar.systemStatusBar().statusItemWithLength_(
            AppKit.NSVariableStatusItemLength
        )
        self._item.button().setTitle_("Calculating...")
        self._build_menu()

        self._observer = make_observer(self._tracker)

        # Counters are advanced by the tick thread; this timer only redraws
        NSTimer.scheduledTimerWithTimeInterval_target_selector_userInfo_repeats_(
            _REFRESH_INTERVAL, self, "refresh:", None, True
        )
        self._refresh()
        return self

    def _build_menu(self):
        menu = AppKit.NSMenu.alloc().init()
        self._screen_item = _info_item("Screen On: Calculating...")
        self._tracking_item = _info_item("Tracking: Calculating...")
        menu.addItem_(self._screen_item)
        menu.addItem_(self._tracking_item)
        menu.addItem_(AppKit.NSMenuItem.separatorItem())

        reset_item = AppKit.NSMenuItem.alloc().initWithTitle_action_keyEquivalent_(
            "Reset Counters", "onReset:", ""
        )
        reset_item.setTarget_(self)
        menu.addItem_(reset_item)

        quit_item = AppKit.NSMenuItem.alloc().initWithTitle_action_keyEquivalent_(
            "Quit", "onQuit:", "q"
        )
        quit_item.setTarget_(self)
        menu.addItem_(quit_item)
        self._item.setMenu_(menu)

    def _refresh(self):
        snap = self._tracker.snapshot()
        self._item.button().setTitle_(status_title(snap))
        screen, tracking = menu_lines(snap)
        self._screen_item.setTitle_(screen)
        self._tracking_item.setTitle_(tracking)

    @objc.typedSelector(b"v@:@")
    def refresh_(self, _timer):
        self._refresh()

    @objc.typedSelector(b"v@:@")
    def onReset_(self, _sender):
        self._daemon.reset()
        self._refresh()

    @objc.typedSelector(b"v@:@")
    def onQuit_(self, _sender):
        self._observer.unregister()
        self._daemon.stop()
        AppKit.NSApplication.sharedApplication().terminate_(None)


_keep_alive = []


def main():
    daemon = Daemon()
    daemon.start()

    app = AppKit.NSApplication.sharedApplication()
    app.setActivationPolicy_(AppKit.NSApplicationActivationPolicyAccessory)
    ctrl = StatusBarController.alloc().initWithDaemon_(daemon)
    _keep_alive.append(ctrl)
    signal.signal(signal.SIGINT, lambda *_: AppHelper.stopEventLoop())
    signal.signal(signal.SIGTERM, lambda *_: AppHelper.stopEventLoop())
    signal.signal(signal.SIGUSR1, daemon.handle_reset_signal)
    try:
        AppHelper.runEventLoop()
    finally:
        daemon.stop()


if __name__ == "__main__":
    main()
