"""
calsync.daemon - Daemon and scheduler module

Background sync of all configured accounts at an interval, with signal
handling and per-account backoff.
"""

import re

# Seconds per interval unit
INTERVAL_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_interval(interval: str | int) -> int:
    """Parse an interval specification into seconds.

    Args:
        interval: Interval specification. Examples:
            - "30s" -> 30 seconds
            - "5m" -> 300 seconds
            - "1h" -> 3600 seconds
            - "1d" -> 86400 seconds
            - 3600 or "3600" -> 3600 seconds

    Returns:
        Interval in seconds, always positive.

    Raises:
        ValueError: If the interval is malformed, uses an unknown unit or
            is not positive.
    """
    if isinstance(interval, bool) or not isinstance(interval, (str, int)):
        raise ValueError(
            f"Invalid interval type: {type(interval).__name__}. Expected str or int."
        )

    if isinstance(interval, int):
        seconds = interval
    elif interval.strip().isdigit():
        seconds = int(interval.strip())
    else:
        match = re.match(r"^(\d+)\s*([smhd])$", interval.lower().strip())
        if not match:
            raise ValueError(
                f"Invalid interval format: '{interval}'. "
                "Use format like '30s', '5m', '1h', or '1d'."
            )
        seconds = int(match.group(1)) * INTERVAL_UNITS[match.group(2)]

    if seconds <= 0:
        raise ValueError(f"Interval must be positive, got {interval!r}")
    return seconds


# Imported after parse_interval, which calsync.config uses
from calsync.daemon.scheduler import (  # noqa: E402
    DEFAULT_MAX_WORKERS,
    DEFAULT_PID_DIR,
    DEFAULT_PID_FILE,
    DaemonAlreadyRunningError,
    DaemonError,
    DaemonScheduler,
    DaemonStats,
    PIDFileError,
    PIDFileManager,
)

__all__ = [
    "parse_interval",
    "DaemonScheduler",
    "DaemonStats",
    "DaemonError",
    "PIDFileError",
    "DaemonAlreadyRunningError",
    "PIDFileManager",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_PID_DIR",
    "DEFAULT_PID_FILE",
]
