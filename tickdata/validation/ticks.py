"""Structural checks applied to a decoded hour of ticks before it is trusted."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, Sequence

from tickdata.errors import DecodeError
from tickdata.timestamps import HOUR, HourWindow


class _TimedTick(Protocol):
    time_fxt: int


def validate_hour_ticks(ticks: Sequence[_TimedTick], window: HourWindow) -> None:
    """Ensure the batch is non-empty and its first and last tick fall into ``window``."""

    if not ticks:
        raise DecodeError(f"No ticks for {window.label}")
    from_hour = ticks[0].time_fxt - ticks[0].time_fxt % HOUR
    to_hour = ticks[-1].time_fxt - ticks[-1].time_fxt % HOUR
    if from_hour != window.fxt:
        raise DecodeError(
            f"Ticks for {window.label} do not match the specified hour: "
            f"tick[0]='{_fxt_seconds(ticks[0].time_fxt)}'"
        )
    if from_hour != to_hour:
        raise DecodeError(
            f"Ticks for {window.label} span multiple hours "
            f"from='{_fxt_seconds(ticks[0].time_fxt)}' to='{_fxt_seconds(ticks[-1].time_fxt)}'"
        )


def _fxt_seconds(fxt: int) -> str:
    return datetime.fromtimestamp(fxt, tz=timezone.utc).strftime("%d-%b-%Y %H:%M:%S FXT")


__all__ = ["validate_hour_ticks"]
