from __future__ import annotations

import re

from .errors import InvalidInputError

_DURATION_PATTERN = re.compile(r"^(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?$")


def parse_duration(value: str) -> int:
    """Parse ``1d3h30m``-style durations into whole minutes."""
    text = value.strip().lower()
    if not text:
        raise InvalidInputError("empty duration")
    match = _DURATION_PATTERN.match(text)
    if match is None:
        raise InvalidInputError(
            f"invalid duration format '{value}' (expected e.g. 30m, 3h, 3h30m, 1d)"
        )
    days, hours, minutes = (int(part) if part else 0 for part in match.groups())
    total = days * 24 * 60 + hours * 60 + minutes
    if total <= 0:
        raise InvalidInputError("duration must be positive")
    return total


def format_minutes(minutes: int) -> str:
    if minutes <= 0:
        return "0m"
    days, remainder = divmod(minutes, 24 * 60)
    hours, mins = divmod(remainder, 60)
    if days:
        return f"{days}d {hours}h {mins}m"
    if hours:
        return f"{hours}h {mins}m"
    return f"{mins}m"
