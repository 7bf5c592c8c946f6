"""Duration parsing for backoff and trigger interval settings."""

import re
from datetime import timedelta

_ISO_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_HUMAN_TOKEN = re.compile(r"(\d+)\s*([smhd])")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed."""


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to a whole number of seconds.

    Both human-readable (``"90s"``, ``"5m"``, ``"1h30m"``) and ISO-8601
    (``"PT5M"``, ``"PT1H"``, ``"P1D"``) forms are accepted.

    Raises:
        DurationParseError: If the string is empty, malformed or zero

    Examples:
        >>> parse_duration("5m")
        300
        >>> parse_duration("PT1H")
        3600
    """
    if not isinstance(duration_str, str) or not duration_str.strip():
        raise DurationParseError("Duration string cannot be empty")

    text = duration_str.strip()
    if text.upper().startswith("P"):
        total = _parse_iso8601(text)
    else:
        total = _parse_human(text)

    if total == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return total


def parse_timedelta(duration_str: str) -> timedelta:
    """Parse a duration string into a ``timedelta``."""
    return timedelta(seconds=parse_duration(duration_str))


def _parse_iso8601(text: str) -> int:
    match = _ISO_PATTERN.match(text.upper())
    if not match or text.upper() in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{text}'. "
            "Expected format like 'PT5M', 'PT1H' or 'P1D'"
        )
    parts = {name: int(value) for name, value in match.groupdict().items() if value}
    return (
        parts.get("days", 0) * _UNIT_SECONDS["d"]
        + parts.get("hours", 0) * _UNIT_SECONDS["h"]
        + parts.get("minutes", 0) * _UNIT_SECONDS["m"]
        + parts.get("seconds", 0)
    )


def _parse_human(text: str) -> int:
    lowered = text.lower()
    tokens = _HUMAN_TOKEN.findall(lowered)
    if not tokens:
        raise DurationParseError(
            f"Invalid duration format: '{text}'. "
            "Expected format like '30s', '5m', '1h' or '1h30m'"
        )

    # Reject leftovers such as "5x" or "m5"
    if "".join(f"{num}{unit}" for num, unit in tokens) != re.sub(r"\s+", "", lowered):
        raise DurationParseError(
            f"Invalid characters in duration: '{text}'. "
            "Use only digits and units: s, m, h, d"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in tokens)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 60,
    max_seconds: int = 86400,
    label: str = "Duration",
) -> None:
    """
    Validate that a duration lies within ``[min_seconds, max_seconds]``.

    Raises:
        DurationParseError: If duration is outside the valid range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {humanize_seconds(duration_seconds)}. "
            f"Minimum is {humanize_seconds(min_seconds)}."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {humanize_seconds(duration_seconds)}. "
            f"Maximum is {humanize_seconds(max_seconds)}."
        )


def humanize_seconds(seconds: int) -> str:
    """Render seconds as the largest whole unit, e.g. ``"5 minutes"``."""
    for unit, size in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
