"""aktiv CLI: run the tracker, inspect stored counters, manage the LaunchAgent."""

import argparse
import os
import signal
import subprocess
import sys
import textwrap
import time
from datetime import datetime
from pathlib import Path

import aktiv.config as config
from aktiv.daemon import read_pid
from aktiv.db import Database
from aktiv.format import format_duration
from aktiv.state import AccumulatedDurations
from aktiv.store import DurationStore

_PLIST_LABEL = "com.aktiv.menubar"
_PLIST_DST = Path.home() / "Library/LaunchAgents" / f"{_PLIST_LABEL}.plist"


def _is_alive(pid: int | None) -> bool:
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _is_loaded() -> bool:
    try:
        out = subprocess.run(
            ["launchctl", "list"], capture_output=True, text=True
        ).stdout
        return _PLIST_LABEL in out
    except OSError:
        return False


def _generate_plist() -> str:
    data = config.DATA_DIR
    return textwrap.dedent(f"""\
        <?xml version="1.0" encoding="UTF-8"?>
        <!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN"
          "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
        <plist version="1.0">
        <dict>
            <key>Label</key>
            <string>{_PLIST_LABEL}</string>
            <key>ProgramArguments</key>
            <array>
                <string>{sys.executable}</string>
                <string>-m</string>
                <string>aktiv.menubar</string>
            </array>
            <key>EnvironmentVariables</key>
            <dict>
                <key>AKTIV_DATA_DIR</key>
                <string>{data}</string>
            </dict>
            <key>RunAtLoad</key>
            <true/>
            <key>ProcessType</key>
            <string>Interactive</string>
            <key>StandardOutPath</key>
            <string>{data}/aktiv.stdout.log</string>
            <key>StandardErrorPath</key>
            <string>{data}/aktiv.stderr.log</string>
        </dict>
        </plist>""")


def _fmt_ts(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


# ── Subcommands ──────────────────────────────────────────────────────────


def cmd_run(args: argparse.Namespace) -> None:
    from aktiv.daemon import Daemon
    Daemon().run()


def cmd_menubar(args: argparse.Namespace) -> None:
    from aktiv.menubar import main as menubar_main
    menubar_main()


def cmd_status(args: argparse.Namespace) -> None:
    pid = read_pid()
    running = _is_alive(pid)

    print("\n  aktiv status")
    print("  ──────────────────\n")
    print(f"  Tracker      {'running' if running else 'stopped'}" +
          (f" (pid {pid})" if running else ""))
    print(f"  Data dir     {config.DATA_DIR}")
    print(f"  LaunchAgent  {'installed' if _PLIST_DST.exists() else 'not installed'}")

    if not config.DB_PATH.exists():
        print("  Database     not created yet\n")
        return

    with Database(config.DB_PATH) as db:
        d = DurationStore(db).load()
        print(f"  Screen on    {format_duration(d.screen_on_time)}")
        print(f"  Tracking     {format_duration(d.total_uptime)}")
        print(f"  History      {db.count('power_events')} power changes, "
              f"{db.count('sleep_events')} sleep/wake edges")

        rows = db.recent("power_events", limit=args.events)
        if rows:
            print("\n  Recent power changes")
            for _id, ts, state, _batt, _chg, screen in rows:
                print(f"    {_fmt_ts(ts)}  {state:<20} screen {format_duration(screen or 0)}")

        rows = db.recent("sleep_events", limit=args.events)
        if rows:
            print("\n  Recent sleep/wake")
            for _id, ts, event_type, _screen, _total in rows:
                print(f"    {_fmt_ts(ts)}  {event_type}")
    print()


def cmd_reset(args: argparse.Namespace) -> None:
    pid = read_pid()
    if _is_alive(pid):
        # The running tracker owns the counters; let it zero and save them
        try:
            os.kill(pid, signal.SIGUSR1)
        except (ProcessLookupError, PermissionError) as e:
            print(f"could not signal aktiv (pid {pid}): {e}")
            return
        print(f"reset sent to running aktiv (pid {pid})")
        return
    with Database(config.DB_PATH) as db:
        if DurationStore(db).save(AccumulatedDurations()):
            print("counters reset")
        else:
            print("reset failed, see: aktiv logs")


def cmd_logs(args: argparse.Namespace) -> None:
    log_file = config.LOG_PATH
    if not log_file.exists():
        print(f"No log file found at {log_file}")
        return
    for line in log_file.read_text().splitlines()[-args.lines:]:
        print(line)


def cmd_install(args: argparse.Namespace) -> None:
    config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    _PLIST_DST.parent.mkdir(parents=True, exist_ok=True)
    _PLIST_DST.write_text(_generate_plist())
    print(f"  [+] LaunchAgent written to {_PLIST_DST}")

    subprocess.run(["launchctl", "unload", str(_PLIST_DST)], capture_output=True)
    subprocess.run(["launchctl", "load", "-w", str(_PLIST_DST)], capture_output=True)
    time.sleep(1)
    if _is_loaded():
        print("  [+] menu bar app started, and will start at login")
    else:
        print("  [!] menu bar app may not have started, see: aktiv logs")


def cmd_uninstall(args: argparse.Namespace) -> None:
    if _PLIST_DST.exists():
        subprocess.run(["launchctl", "unload", str(_PLIST_DST)], capture_output=True)
        _PLIST_DST.unlink()
        print("  [+] LaunchAgent removed")
    else:
        print("  [ ] LaunchAgent not found (already removed?)")
    print(f"  [ ] Data directory kept at: {config.DATA_DIR}")


def cmd_start(args: argparse.Namespace) -> None:
    if not _PLIST_DST.exists():
        print("LaunchAgent not found. Run: aktiv install")
        return
    subprocess.run(["launchctl", "load", "-w", str(_PLIST_DST)], capture_output=True)
    print("aktiv started")


def cmd_stop(args: argparse.Namespace) -> None:
    if not _is_loaded():
        print("aktiv is not running under launchd")
        return
    subprocess.run(["launchctl", "unload", str(_PLIST_DST)], capture_output=True)
    print("aktiv stopped")


# ── Main ─────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aktiv",
        description="track screen-on time while running on battery",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="run the tracker in the foreground (no menu bar)")
    sub.add_parser("menubar", help="launch the macOS menu bar app")

    p_status = sub.add_parser("status", help="show stored counters and recent events")
    p_status.add_argument("-e", "--events", type=int, default=5,
                          help="recent events to show per kind (default: 5)")

    sub.add_parser("reset", help="zero the counters (signals the running tracker if any)")

    p_logs = sub.add_parser("logs", help="show recent log output")
    p_logs.add_argument("-n", "--lines", type=int, default=30,
                        help="number of lines to show (default: 30)")

    sub.add_parser("install", help="start the menu bar app at login")
    sub.add_parser("uninstall", help="remove the login item")
    sub.add_parser("start", help="start the menu bar app via launchd")
    sub.add_parser("stop", help="stop the menu bar app via launchd")
    return parser


COMMANDS = {
    "run": cmd_run,
    "menubar": cmd_menubar,
    "status": cmd_status,
    "reset": cmd_reset,
    "logs": cmd_logs,
    "install": cmd_install,
    "uninstall": cmd_uninstall,
    "start": cmd_start,
    "stop": cmd_stop,
}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in COMMANDS:
        COMMANDS[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
