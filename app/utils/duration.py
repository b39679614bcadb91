"""Duration utilities.

All durations are integer microseconds. This module converts them to and
from the units people actually read and type.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import NamedTuple, Optional, Union

MICROSECOND = 1
MILLISECOND = 1_000
SECOND = 1_000_000
MINUTE = 60_000_000
HOUR = 3_600_000_000
DAY = 86_400_000_000
WEEK = 604_800_000_000
MONTH = 2_629_746_000_000  # 30.44 days
YEAR = 31_556_952_000_000  # 365.24 days

UNIT_TO_US = {
    "us": MICROSECOND,
    "μs": MICROSECOND,
    "µs": MICROSECOND,
    "ms": MILLISECOND,
    "s": SECOND,
    "m": MINUTE,
    "min": MINUTE,
    "h": HOUR,
    "hr": HOUR,
    "d": DAY,
    "day": DAY,
    "w": WEEK,
    "wk": WEEK,
    "week": WEEK,
    "mo": MONTH,
    "mon": MONTH,
    "month": MONTH,
    "y": YEAR,
    "yr": YEAR,
    "year": YEAR,
}

_TOKEN = re.compile(r"(\d+(?:\.\d+)?)\s*([a-zμµ]+)")

# (upper bound, major field, major suffix, minor field, minor suffix)
_UNIT_PAIRS = (
    (HOUR, "minutes", "m", "seconds", "s"),
    (DAY, "hours", "h", "minutes", "m"),
    (WEEK, "days", "d", "hours", "h"),
    (MONTH, "weeks", "w", "days", "d"),
    (YEAR, "months", "mo", "weeks", "w"),
    (None, "years", "y", "months", "mo"),
)


class DurationBreakdown(NamedTuple):
    """A duration split into calendar-ish components."""

    years: int
    months: int
    weeks: int
    days: int
    hours: int
    minutes: int
    seconds: int
    milliseconds: int
    microseconds: int


def breakdown(microseconds: int) -> DurationBreakdown:
    """
    Split a non-negative duration into its component units.

    Each field holds what is left after every coarser unit has been
    extracted, so no field reaches its unit's capacity.

    Args:
        microseconds: Duration in microseconds

    Returns:
        DurationBreakdown with all components

    Raises:
        ValueError: If the duration is negative

    Examples:
        >>> breakdown(93_784_000_000).days, breakdown(93_784_000_000).hours
        (1, 2)
    """
    if microseconds < 0:
        raise ValueError("Cannot break down a negative duration")

    remaining = microseconds
    values = []
    for unit in (YEAR, MONTH, WEEK, DAY, HOUR, MINUTE, SECOND, MILLISECOND):
        count, remaining = divmod(remaining, unit)
        values.append(count)
    values.append(remaining)

    return DurationBreakdown(*values)


def _format_seconds(parts: DurationBreakdown) -> str:
    if parts.milliseconds == 0:
        return f"{parts.seconds}s"
    text = f"{parts.seconds + parts.milliseconds / 1000:.1f}"
    if text.endswith(".0"):
        text = text[:-2]
    return f"{text}s"


def _format(microseconds: int, compact: bool) -> str:
    if microseconds == 0:
        return "0μs"

    sign = "-" if microseconds < 0 else ""
    magnitude = abs(microseconds)
    parts = breakdown(magnitude)

    if compact and magnitude < MILLISECOND:
        return f"{sign}{parts.microseconds}μs"
    if magnitude < SECOND:
        return f"{sign}{parts.milliseconds}ms"
    if magnitude < MINUTE:
        return f"{sign}{_format_seconds(parts)}"

    for limit, major, major_suffix, minor, minor_suffix in _UNIT_PAIRS:
        if limit is None or magnitude < limit:
            text = f"{getattr(parts, major)}{major_suffix}"
            minor_value = getattr(parts, minor)
            if minor_value > 0:
                text += f" {minor_value}{minor_suffix}"
            return f"{sign}{text}"

    raise AssertionError("unreachable")


def format_duration(microseconds: int) -> str:
    """
    Format a duration using the two most meaningful units.

    Unit selection:
        < 1 second  -> milliseconds ("456ms")
        < 1 minute  -> seconds, one decimal if needed ("12.5s")
        < 1 hour    -> minutes and seconds ("5m 30s")
        < 1 day     -> hours and minutes ("2h 15m")
        < 1 week    -> days and hours ("3d 4h")
        < 1 month   -> weeks and days ("2w 3d")
        < 1 year    -> months and weeks ("3mo 1w")
        otherwise   -> years and months ("2y 6mo")

    The minor unit is omitted when it is zero. Zero formats as "0μs" and
    negative values get a leading "-".

    Examples:
        >>> format_duration(330_000_000)
        '5m 30s'
        >>> format_duration(12_500_000)
        '12.5s'
    """
    return _format(microseconds, compact=False)


def format_duration_compact(microseconds: int) -> str:
    """Like format_duration, but shows microseconds below one millisecond."""
    return _format(microseconds, compact=True)


def format_timer_display(elapsed_us: int, show_ms: bool = False) -> str:
    """
    Format elapsed time as a running-clock string.

    Returns "MM:SS" under an hour and "HH:MM:SS" from there on (hours keep
    counting past a day). With ``show_ms`` and less than a minute elapsed,
    returns "SS.mmm".

    Examples:
        >>> format_timer_display(3_665_000_000)
        '01:01:05'
    """
    elapsed = max(0, elapsed_us)

    if show_ms and elapsed < MINUTE:
        seconds, rest = divmod(elapsed, SECOND)
        return f"{seconds:02d}.{rest // MILLISECOND:03d}"

    hours, rest = divmod(elapsed // SECOND, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def _exact(value: Union[int, float, str, Decimal]) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value)


def _round(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_HALF_UP))


def to_microseconds(value: Union[int, float, str, Decimal], unit: str) -> int:
    """
    Convert a single value in the given unit to microseconds.

    Args:
        value: Amount, fractional values allowed
        unit: Unit name (us, ms, s, m, h, d, w, mo, y and their aliases)

    Returns:
        Duration in microseconds, rounded to the nearest microsecond

    Raises:
        ValueError: If the unit is not recognized
    """
    multiplier = UNIT_TO_US.get(unit.strip().lower())
    if multiplier is None:
        raise ValueError(
            f'Unknown time unit: "{unit}". Valid units: us, ms, s, m, h, d, w, mo, y'
        )
    try:
        amount = _exact(value)
    except InvalidOperation:
        raise ValueError(f'Invalid duration value: "{value}"')
    return _round(amount * multiplier)


def parse_duration(text: str) -> Optional[int]:
    """
    Parse a human-entered duration string to microseconds.

    Accepts one or more ``<number><unit>`` groups, optionally separated by
    whitespace: "1h 30m", "90m", "1.5h", "1h30m", "2w3d12h". A leading "-"
    negates the result. Empty input and "0" are zero.

    Args:
        text: Duration string

    Returns:
        Duration in microseconds, or None if the string cannot be parsed

    Examples:
        >>> parse_duration("1h 30m")
        5400000000
        >>> parse_duration("invalid") is None
        True
    """
    trimmed = text.strip().lower()
    if trimmed in ("", "0"):
        return 0

    negative = trimmed.startswith("-")
    if negative:
        trimmed = trimmed[1:].lstrip()

    total = Decimal(0)
    position = 0
    matched = False

    for match in _TOKEN.finditer(trimmed):
        if trimmed[position:match.start()].strip():
            return None
        multiplier = UNIT_TO_US.get(match.group(2))
        if multiplier is None:
            return None
        total += Decimal(match.group(1)) * multiplier
        position = match.end()
        matched = True

    if not matched or trimmed[position:].strip():
        return None

    result = _round(total)
    return -result if negative else result
