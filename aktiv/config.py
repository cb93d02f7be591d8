"""Central configuration for aktiv."""

import os
from pathlib import Path

# ── Paths ──────────────────────────────────────────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Load .env from project root
_env_path = _PROJECT_ROOT / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip())


def _default_data_dir() -> Path:
    env = os.environ.get("AKTIV_DATA_DIR")
    if env:
        return Path(env)
    return Path.home() / ".aktiv"


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATA_DIR = _default_data_dir()
DB_PATH = DATA_DIR / "aktiv.db"
LOG_PATH = DATA_DIR / "aktiv.log"
PID_PATH = DATA_DIR / "aktiv.pid"

# ── Tracking ───────────────────────────────────────────────────────────
TICK_INTERVAL = 1.0         # seconds between ticks
PROBE_TIMEOUT = 0.8         # pmset must answer within one tick
SLEEP_GAP_SECONDS = 30      # a longer gap between ticks is unobserved sleep
RESET_POLICY = os.environ.get("AKTIV_RESET_POLICY", "plug_edge")

# ── Persistence ────────────────────────────────────────────────────────
CHECKPOINT_INTERVAL = 60    # save counters + flush history
SAVE_ON_EDGE = _env_flag("AKTIV_SAVE_ON_EDGE", True)
BUFFER_MAX_SIZE = 200       # force flush if buffer exceeds this

# ── Daemon health ──────────────────────────────────────────────────────
HEALTH_HEARTBEAT_INTERVAL = 300
PID_HANDOFF_TIMEOUT = 5.0     # wait this long for a previous instance to save and exit
