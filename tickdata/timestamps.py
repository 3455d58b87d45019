"""Timestamp coercion and the FXT trading calendar.

FXT is the broker trading clock: America/New_York shifted by +7 hours, so that the
New York 17:00 close is 00:00 FXT. FXT therefore runs at GMT+2 in winter and GMT+3 in
summer and changes offset exactly twice a year, together with US daylight saving time.

All calendar helpers work on integer epoch seconds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, NamedTuple
from zoneinfo import ZoneInfo

from tickdata.errors import ArgumentError

UTC = timezone.utc

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

_NEW_YORK = ZoneInfo("America/New_York")
_FXT_SHIFT = 7 * HOUR

# years searched around a timestamp when looking for the surrounding transitions
_TRANSITION_SEARCH_YEARS = 3

# Threshold: values above this are assumed to be epoch milliseconds when
# epoch_unit="auto".  1e12 ms ≈ 2001-09-09, so any modern epoch-ms value
# exceeds it while epoch-seconds values (up to ~1.7e9 in 2024) stay below.
_MS_THRESHOLD = 1e12


class Transition(NamedTuple):
    """An FXT offset change: ``offset`` is in force from ``time`` (GMT epoch seconds) on."""

    time: int
    offset: int


@dataclass(frozen=True)
class HourWindow:
    """One trading hour carried on both clocks: ``fxt == gmt + offset(gmt)``."""

    gmt: int
    fxt: int

    def __post_init__(self) -> None:
        if self.gmt % HOUR or self.fxt % HOUR:
            raise ArgumentError(f"hour window must be hour-aligned: gmt={self.gmt} fxt={self.fxt}")

    @classmethod
    def from_gmt(cls, gmt: int) -> "HourWindow":
        return cls(gmt=gmt, fxt=gmt_to_fxt(gmt))

    @property
    def label(self) -> str:
        return format_fxt(self.fxt)


def fxt_offset(gmt: int) -> int:
    """Return the FXT offset in seconds in force at the GMT timestamp ``gmt``."""

    moment = datetime.fromtimestamp(gmt, tz=UTC).astimezone(_NEW_YORK)
    return int(moment.utcoffset().total_seconds()) + _FXT_SHIFT


def fxt_timezone_offset(gmt: int) -> tuple[int, Transition | None, Transition | None]:
    """Return ``(offset, prev, next)`` for the GMT timestamp ``gmt``.

    ``prev`` is the last transition at or before ``gmt``, ``next`` the first one after
    it. The offset is constant on ``[prev.time, next.time)``, so callers iterating
    forward only need to call again once they reach ``next.time``.
    """

    year = datetime.fromtimestamp(gmt, tz=UTC).year
    previous: Transition | None = None
    following: Transition | None = None
    for candidate_year in range(year - _TRANSITION_SEARCH_YEARS, year + _TRANSITION_SEARCH_YEARS + 1):
        for transition in _transitions(candidate_year):
            if transition.time <= gmt:
                previous = transition
            elif following is None:
                following = transition
    return fxt_offset(gmt), previous, following


def transitions_in_year(year: int) -> tuple[Transition, ...]:
    """Return the FXT offset transitions falling into the given GMT calendar year."""

    return _transitions(year)


@lru_cache(maxsize=None)
def _transitions(year: int) -> tuple[Transition, ...]:
    start = _epoch(datetime(year, 1, 1, tzinfo=UTC))
    end = _epoch(datetime(year + 1, 1, 1, tzinfo=UTC))
    found: list[Transition] = []
    current = fxt_offset(start)
    day = start
    while day < end:
        following_day = min(day + DAY, end)
        offset = fxt_offset(following_day)
        if offset != current:
            found.append(Transition(_bisect_change(day, following_day, current), offset))
            current = offset
        day = following_day
    return tuple(found)


def _bisect_change(low: int, high: int, offset_at_low: int) -> int:
    # first second in (low, high] whose offset differs from offset_at_low
    while high - low > 1:
        middle = (low + high) // 2
        if fxt_offset(middle) == offset_at_low:
            low = middle
        else:
            high = middle
    return high


def gmt_to_fxt(gmt: int) -> int:
    return gmt + fxt_offset(gmt)


def fxt_to_gmt(fxt: int) -> int:
    """Convert an FXT timestamp to GMT; ambiguous wall times resolve to the first occurrence."""

    wall = datetime.fromtimestamp(fxt - _FXT_SHIFT, tz=UTC).replace(tzinfo=None)
    return _epoch(wall.replace(tzinfo=_NEW_YORK))


def is_weekend(fxt: int) -> bool:
    """Return True for non-trading FXT time: Saturday and Sunday until Monday 00:00 FXT."""

    return datetime.fromtimestamp(fxt, tz=UTC).weekday() >= 5


def next_fxt_day_start(gmt: int) -> tuple[int, int, int, Transition | None, Transition | None]:
    """Round ``gmt`` forward to the next FXT 00:00 and return ``(gmt, fxt, offset, prev, next)``.

    A timestamp already on an FXT day boundary is returned unchanged. When the rounding
    would cross an offset transition the offset is re-evaluated at the transition and
    the rounding repeats until the result is stable.
    """

    offset, previous, following = fxt_timezone_offset(gmt)
    fxt = gmt + offset
    while fxt % DAY:
        diff = DAY - fxt % DAY
        if following is not None and gmt + diff >= following.time:
            gmt = following.time
            offset, previous, following = fxt_timezone_offset(gmt)
            fxt = gmt + offset
            continue
        gmt += diff
        fxt += diff
    return gmt, fxt, offset, previous, following


def hour_start(time: int) -> int:
    return time - time % HOUR


def format_fxt(fxt: int) -> str:
    """Short human readable form used in log lines, e.g. ``Sun, 06-Jan-2013 02:00``."""

    return datetime.fromtimestamp(fxt, tz=UTC).strftime("%a, %d-%b-%Y %H:%M")


def coerce_timestamp(
    value: Any,
    *,
    epoch_unit: str = "auto",
    index: int | None = None,
) -> datetime:
    """Convert *value* to a timezone-aware UTC datetime.

    Parameters
    ----------
    value:
        ``datetime`` (naive values are taken as UTC), ``date`` (midnight), epoch
        ``int | float`` interpreted according to *epoch_unit*, or an ISO string
        (``Z`` suffix and bare ``YYYY-MM-DD`` accepted).
    epoch_unit:
        ``"auto"`` (values above 10¹² are milliseconds), ``"s"`` or ``"ms"``.
    index:
        Optional positional index for richer error messages when processing
        sequences of records.

    Raises
    ------
    TypeError | ValueError
        If *value* cannot be interpreted as a timestamp.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)

    if isinstance(value, bool):
        _raise(TypeError, f"Unsupported timestamp type {type(value)}", index)

    if isinstance(value, (int, float)):
        seconds = _epoch_to_seconds(float(value), epoch_unit)
        return datetime.fromtimestamp(seconds, tz=UTC)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            _raise(ValueError, "timestamp string cannot be empty", index)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            _raise(ValueError, f"Invalid timestamp '{value}'", index)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)

    _raise(TypeError, f"Unsupported timestamp type {type(value)}", index)
    return None  # unreachable


def to_epoch_seconds(value: Any) -> int:
    """Coerce *value* and return whole epoch seconds, wall clock taken as-is."""

    return _epoch(coerce_timestamp(value))


def _epoch(moment: datetime) -> int:
    return int((moment - datetime(1970, 1, 1, tzinfo=UTC)) // timedelta(seconds=1))


def _epoch_to_seconds(value: float, epoch_unit: str) -> float:
    if epoch_unit == "s":
        return value
    if epoch_unit == "ms":
        return value / 1000
    if epoch_unit == "auto":
        return value / 1000 if value > _MS_THRESHOLD else value
    raise ValueError(f"Unknown epoch_unit '{epoch_unit}'; expected 'auto', 's', or 'ms'")


def _raise(
    exc_type: type[Exception],
    message: str,
    index: int | None,
) -> None:
    position = f" at index {index}" if index is not None else ""
    raise exc_type(f"{message}{position}")


__all__ = [
    "DAY",
    "HOUR",
    "HourWindow",
    "MINUTE",
    "Transition",
    "coerce_timestamp",
    "format_fxt",
    "fxt_offset",
    "fxt_timezone_offset",
    "fxt_to_gmt",
    "gmt_to_fxt",
    "hour_start",
    "is_weekend",
    "next_fxt_day_start",
    "to_epoch_seconds",
    "transitions_in_year",
]
