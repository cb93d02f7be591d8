"""Display strings for the status bar title and menu. Pure functions."""

from aktiv.state import PowerState, TrackerSnapshot


def format_duration(seconds: float) -> str:
    """Whole hours and minutes, e.g. 3725 -> "1h 2m"."""
    total = max(int(seconds), 0)
    hours = total // 3600
    minutes = (total % 3600) // 60
    return f"{hours}h {minutes}m"


def status_title(snapshot: TrackerSnapshot) -> str:
    if snapshot.power_state is None:
        return "Calculating..."
    if snapshot.power_state is PowerState.UNPLUGGED:
        return f"Active: {format_duration(snapshot.durations.screen_on_time)}"
    if snapshot.charging:
        return "Charging..."
    return "Plugged In"


def menu_lines(snapshot: TrackerSnapshot) -> list[str]:
    d = snapshot.durations
    return [
        f"Screen On: {format_duration(d.screen_on_time)}",
        f"Tracking: {format_duration(d.total_uptime)}",
    ]
