"""Relative durations, downsampling windows and time ranges.

Durations follow the store's notation: an optional sign, an integer amount and
one of the units ``ms``, ``s``, ``m``, ``h``, ``d``, ``w``, ``mo``, ``y``
(``-30d``, ``15m``, ``1mo``). Time range bounds are either ``now()``, a
relative duration from now, or an ISO 8601 timestamp.
"""

import re
from datetime import datetime
from typing import Optional, Union

import pandas as pd

from tariff_engine.core.constants import PERIOD_STARTS
from tariff_engine.core.errors import ValidationError
from tariff_engine.core.schemas import TimeRange

_DURATION_RE = re.compile(r"^(?P<sign>[+-]?)(?P<amount>\d+)(?P<unit>mo|ms|s|m|h|d|w|y)$")

_TIMEDELTA_UNITS = {
    "ms": "milliseconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}

_PANDAS_FREQ = {
    "ms": "ms",
    "s": "s",
    "m": "min",
    "h": "h",
    "d": "D",
}


def parse_duration(text: str) -> tuple[int, str]:
    """Split a duration literal into a signed amount and its unit.

    Raises:
        ValidationError: If the literal is not a valid duration
    """
    match = _DURATION_RE.match(text.strip())
    if match is None:
        raise ValidationError(f"Invalid duration: {text!r}")

    amount = int(match.group("amount"))
    if match.group("sign") == "-":
        amount = -amount
    return amount, match.group("unit")


def duration_offset(text: str) -> Union[pd.Timedelta, pd.DateOffset]:
    """Convert a duration literal to an offset that can be added to a timestamp."""
    amount, unit = parse_duration(text)
    if unit == "mo":
        return pd.DateOffset(months=amount)
    if unit == "y":
        return pd.DateOffset(years=amount)
    return pd.Timedelta(**{_TIMEDELTA_UNITS[unit]: amount})


def window_minutes(window: str) -> float:
    """Width of a fixed-size window in minutes.

    Calendar windows (``mo``, ``y``) have no fixed width and are rejected.
    """
    amount, unit = parse_duration(window)
    if amount <= 0:
        raise ValidationError(f"Window must be positive: {window!r}")
    if unit in ("mo", "y"):
        raise ValidationError(f"Window {window!r} has no fixed width")
    return pd.Timedelta(**{_TIMEDELTA_UNITS[unit]: amount}).total_seconds() / 60.0


def pandas_freq(window: str) -> str:
    """Translate a window literal to a pandas resample frequency."""
    amount, unit = parse_duration(window)
    if amount <= 0:
        raise ValidationError(f"Window must be positive: {window!r}")
    if unit == "w":
        return f"{amount * 7}D"
    if unit == "mo":
        return f"{amount}MS"
    if unit == "y":
        return f"{amount}YS"
    return f"{amount}{_PANDAS_FREQ[unit]}"


def ensure_utc(value: Union[str, datetime, pd.Timestamp]) -> pd.Timestamp:
    """Return a tz-aware UTC timestamp; naive values are taken as UTC."""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def resolve_time(text: Union[str, datetime], now: pd.Timestamp) -> pd.Timestamp:
    """Resolve ``now()``, a relative duration or an ISO timestamp."""
    if isinstance(text, datetime):
        return ensure_utc(text)

    value = text.strip()
    if value in ("now()", "now"):
        return now
    if _DURATION_RE.match(value):
        return now + duration_offset(value)

    try:
        ts = ensure_utc(value)
    except ValueError as e:
        raise ValidationError(f"Invalid time: {text!r}") from e
    if pd.isna(ts):
        raise ValidationError(f"Invalid time: {text!r}")
    return ts


def resolve_time_range(
    start: Union[str, datetime],
    stop: Union[str, datetime] = "now()",
    now: Optional[Union[datetime, pd.Timestamp]] = None,
) -> TimeRange:
    """Build a validated time range from user-facing bounds.

    Args:
        start: Range start (``-30d``, ``now()`` or ISO timestamp)
        stop: Range stop, exclusive
        now: Reference time for relative bounds (defaults to the current time)

    Raises:
        ValidationError: If a bound cannot be parsed or start is not before stop
    """
    reference = ensure_utc(now) if now is not None else pd.Timestamp.now(tz="UTC")
    start_ts = resolve_time(start, reference)
    stop_ts = resolve_time(stop, reference)

    if start_ts >= stop_ts:
        raise ValidationError(f"Range start {start_ts} must be before stop {stop_ts}")

    return TimeRange(start=start_ts.to_pydatetime(), stop=stop_ts.to_pydatetime())


def period_range(period: str, now: Optional[Union[datetime, pd.Timestamp]] = None) -> TimeRange:
    """Time range covering a named billing period up to now."""
    if period not in PERIOD_STARTS:
        raise ValidationError(f"Invalid period: {period!r}. Expected one of {sorted(PERIOD_STARTS)}")
    return resolve_time_range(PERIOD_STARTS[period], "now()", now)


def lookback_range(months: int, now: Optional[Union[datetime, pd.Timestamp]] = None) -> TimeRange:
    """Time range covering the trailing ``months`` calendar months."""
    if months <= 0:
        raise ValidationError(f"Lookback must be at least one month, got {months}")
    return resolve_time_range(f"-{months}mo", "now()", now)
