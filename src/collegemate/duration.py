"""Duration parsing utilities."""

import re
from datetime import timedelta

from collegemate.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h|d)?$")
_UNITS: dict[str, float] = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3_600,
    "d": 86_400,
}


def parse_duration(duration: Duration) -> float:
    """Parse a duration to seconds.

    Accepts ``"250ms"``, ``"30s"``, ``"5m"``, ``"1h"``, ``"1d"``, a
    :class:`~datetime.timedelta`, or a plain number of seconds (``30`` or
    ``"30"``, as read from the environment).
    """
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    elif isinstance(duration, (int, float)):
        seconds = float(duration)
    else:
        match = _DURATION_PATTERN.match(duration.strip())
        if not match:
            raise ValueError(f"Invalid duration: {duration!r}")
        value, unit = match.groups()
        seconds = float(value) * _UNITS[unit or "s"]

    if seconds < 0:
        raise ValueError(f"Invalid duration: {duration!r} is negative")
    return seconds
