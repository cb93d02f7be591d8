"""Power-source probe: asks `pmset -g batt` whether we are on battery.

Every failure mode (no pmset, timeout, non-zero exit, desktop Mac with no
battery, unexpected output) collapses to the fail-safe reading
(on_battery=False, charging=True), which the tracker treats as plugged in.
"""

import logging
import re
import subprocess

import aktiv.config as config

log = logging.getLogger(__name__)

FAIL_SAFE = (False, True)

_BATT_RE = re.compile(
    r"(\d+)%;\s*(charging|discharging|charged|finishing charge|AC attached)"
)


def _parse_pmset(output: str) -> tuple[bool, bool] | None:
    """Parse pmset -g batt output into (is_on_battery, is_charging).

    Returns None if the power source or battery line can't be found.
    """
    if "'Battery Power'" in output:
        on_battery = True
    elif "'AC Power'" in output:
        on_battery = False
    else:
        return None

    match = _BATT_RE.search(output)
    if not match:
        return None

    is_charging = match.group(2) in ("charging", "finishing charge")
    return on_battery, is_charging


class PmsetProbe:
    """Callable probe; logs failures only when the failure state changes."""

    def __init__(self, timeout: float | None = None):
        self.timeout = config.PROBE_TIMEOUT if timeout is None else timeout
        self._failing = False

    def __call__(self) -> tuple[bool, bool]:
        return self.read_power_state()

    def read_power_state(self) -> tuple[bool, bool]:
        try:
            result = subprocess.run(
                ["pmset", "-g", "batt"],
                capture_output=True, text=True, timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            return self._fail(f"pmset unavailable: {exc}")

        if result.returncode != 0:
            return self._fail(f"pmset exited with {result.returncode}")

        parsed = _parse_pmset(result.stdout)
        if parsed is None:
            return self._fail("no battery in pmset output")

        if self._failing:
            log.info("power probe recovered")
            self._failing = False
        return parsed

    def _fail(self, reason: str) -> tuple[bool, bool]:
        if not self._failing:
            log.warning("power probe failed (%s), treating as plugged in", reason)
            self._failing = True
        return FAIL_SAFE
