"""Codec for the provider's ``bi5`` history files.

A ``bi5`` file is an LZMA ("alone" container) compressed sequence of fixed-width
big-endian records:

==========================  =====  ==============================================
record                      size   layout
==========================  =====  ==============================================
tick                        20     uint timeDelta (ms since hour start), uint ask,
                                   uint bid, float askSize, float bidSize
bar                         24     uint timeDelta (s since 00:00 GMT), uint open,
                                   uint close, uint low, uint high, float volume
history start               16     int64 period (ms), int64 start (ms since epoch,
                                   2**63-1 = not available)
==========================  =====  ==============================================

Prices are integer points. The two float fields are big-endian as well; they are
byte-reversed explicitly on little-endian hosts and then unpacked in native order.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import lzma
from pathlib import Path
import struct
import sys
from typing import Iterable

from tickdata.errors import DecodeError
from tickdata.storage.atomic import write_bytes_atomic
from tickdata.timestamps import HourWindow, format_fxt
from tickdata.validation import validate_hour_ticks

LOGGER = logging.getLogger(__name__)

TICK_SIZE = 20
BAR_SIZE = 24
HISTORY_START_SIZE = 16

HISTORY_NOT_AVAILABLE = 2**63 - 1

# timeframe id (minutes) -> name; 0 denotes tick history
TIMEFRAMES = {
    0: "TICK",
    1: "M1",
    5: "M5",
    15: "M15",
    30: "M30",
    60: "H1",
    240: "H4",
    1440: "D1",
    10080: "W1",
    43200: "MN1",
}

_LITTLE_ENDIAN = sys.byteorder == "little"
_TICK_HEAD = struct.Struct(">III")
_BAR_HEAD = struct.Struct(">IIIII")
_HISTORY_RECORD = struct.Struct(">qq")
_SYMBOL_HEAD = struct.Struct(">BB")
_RECORD_COUNT = struct.Struct(">II")
_NATIVE_FLOAT = struct.Struct("=f")


@dataclass(frozen=True)
class DukascopyTick:
    time_delta: int
    ask: int
    bid: int
    ask_size: float
    bid_size: float


@dataclass(frozen=True)
class HourTick:
    """A tick re-expressed on both clocks of its owning hour."""

    time_delta: int
    bid: int
    ask: int
    time_gmt: int
    time_fxt: int
    time_millis: int


@dataclass(frozen=True)
class DukascopyBar:
    time_delta: int
    open: int
    close: int
    low: int
    high: int
    volume: float


def decompress(data: bytes, save_as: Path | str | None = None) -> bytes:
    """Decompress a ``bi5`` payload, optionally storing the result atomically at ``save_as``."""

    if save_as is not None and not str(save_as):
        raise ValueError("save_as must not be empty")
    if not data:
        raise DecodeError("Cannot decompress an empty payload")
    try:
        raw = lzma.decompress(data, format=lzma.FORMAT_AUTO)
    except lzma.LZMAError as exc:
        raise DecodeError(f"Corrupt compressed history data ({len(data)} bytes): {exc}") from exc

    if save_as is not None:
        write_bytes_atomic(save_as, raw)
    return raw


def compress(data: bytes) -> bytes:
    return lzma.compress(data, format=lzma.FORMAT_ALONE)


def decode_ticks(data: bytes) -> list[DukascopyTick]:
    length = len(data)
    if not length or length % TICK_SIZE:
        raise DecodeError(f"Odd length of passed tick data: {length} (not a multiple of {TICK_SIZE})")

    ticks: list[DukascopyTick] = []
    for offset in range(0, length, TICK_SIZE):
        time_delta, ask, bid = _TICK_HEAD.unpack_from(data, offset)
        ask_size = _read_float(data, offset + 12)
        bid_size = _read_float(data, offset + 16)
        ticks.append(DukascopyTick(time_delta, ask, bid, round(ask_size, 2), round(bid_size, 2)))
    return ticks


def encode_ticks(ticks: Iterable[DukascopyTick]) -> bytes:
    chunks: list[bytes] = []
    for tick in ticks:
        chunks.append(_TICK_HEAD.pack(tick.time_delta, tick.ask, tick.bid))
        chunks.append(_write_float(tick.ask_size))
        chunks.append(_write_float(tick.bid_size))
    return b"".join(chunks)


def decode_hour_ticks(data: bytes, window: HourWindow) -> list[HourTick]:
    """Decode raw tick data of one provider hour and attach both clocks of ``window``."""

    ticks = []
    for tick in decode_ticks(data):
        seconds, millis = divmod(tick.time_delta, 1000)
        ticks.append(
            HourTick(
                time_delta=tick.time_delta,
                bid=tick.bid,
                ask=tick.ask,
                time_gmt=window.gmt + seconds,
                time_fxt=window.fxt + seconds,
                time_millis=millis,
            )
        )
    validate_hour_ticks(ticks, window)
    return ticks


def decode_bars(
    data: bytes,
    digits: int,
    *,
    symbol: str = "",
    price_type: str = "",
    time: int | None = None,
) -> list[DukascopyBar]:
    """Decode bar records; bars violating ``low <= open,close <= high`` are logged and repaired."""

    length = len(data)
    if not length or length % BAR_SIZE:
        raise DecodeError(
            f"Odd length of passed {symbol} {price_type} bar data: {length} (not a multiple of {BAR_SIZE})"
        )

    divider = 10**digits
    bars: list[DukascopyBar] = []
    for index, offset in enumerate(range(0, length, BAR_SIZE)):
        time_delta, open_, close, low, high = _BAR_HEAD.unpack_from(data, offset)
        volume = round(_read_float(data, offset + 20), 2)

        if open_ > high or open_ < low or close > high or close < low:
            prices = " ".join(
                f"{name}={value / divider:.{digits}f}"
                for name, value in (("O", open_), ("H", high), ("L", low), ("C", close))
            )
            LOGGER.warning(
                "Illegal %s %s data for bar[%d] of %s: %s, adjusting high/low...",
                symbol,
                price_type,
                index,
                format_fxt(time) if time is not None else "n/a",
                prices,
            )
            high, low = max(open_, high, low, close), min(open_, high, low, close)

        bars.append(DukascopyBar(time_delta, open_, close, low, high, volume))
    return bars


def decode_history_start(data: bytes) -> dict[int, int | float | None]:
    """Decode one symbol's history start records into ``{timeframe_minutes: start}``.

    Starts are epoch seconds (``float`` when the source has millisecond precision) or
    ``None`` when the provider has no history for that timeframe.
    """

    length = len(data)
    if not length or length % HISTORY_START_SIZE:
        raise DecodeError(f"Illegal length of history start data: {length}")

    timeframes: dict[int, int | float | None] = {}
    for offset in range(0, length, HISTORY_START_SIZE):
        timeframe, start = _read_history_start_record(data, offset)
        timeframes[timeframe] = start
    return dict(sorted(timeframes.items()))


def decode_history_starts(data: bytes) -> dict[str, dict[int, int | float | None]]:
    """Decode the all-symbols history start file into ``{symbol: {timeframe: start}}``.

    Each symbol block is ``0x00, len, name[len], int64 count, count * record``.
    Symbols without any available history are omitted.
    """

    length = len(data)
    if not length:
        raise DecodeError("Illegal length of history start data: 0")

    symbols: dict[str, dict[int, int | float | None]] = {}
    offset = 0
    while offset < length:
        if offset + _SYMBOL_HEAD.size > length:
            raise DecodeError(f"Truncated history start data at offset {offset}")
        marker, name_length = _SYMBOL_HEAD.unpack_from(data, offset)
        if marker:
            raise DecodeError(f"Unexpected history start format at offset {offset}: start={marker}")
        offset += _SYMBOL_HEAD.size

        name = data[offset : offset + name_length]
        if len(name) != name_length:
            raise DecodeError(
                f"Unexpected history start format at offset {offset}: symbol={name!r} length={name_length}"
            )
        offset += name_length
        if offset + _RECORD_COUNT.size > length:
            raise DecodeError(f"Truncated history start data at offset {offset}")
        high, count = _RECORD_COUNT.unpack_from(data, offset)
        if high:
            raise DecodeError(f"Unexpected history start format at offset {offset}: high={high}")
        if count != 4:
            raise DecodeError(f"Unexpected history start format at offset {offset}: count={count}")
        offset += _RECORD_COUNT.size

        if offset + count * HISTORY_START_SIZE > length:
            raise DecodeError(f"Truncated history start records for {name.decode('ascii', 'replace')}")
        timeframes: dict[int, int | float | None] = {}
        for _ in range(count):
            timeframe, start = _read_history_start_record(data, offset)
            timeframes[timeframe] = start
            offset += HISTORY_START_SIZE

        if any(start is not None for start in timeframes.values()):
            symbols[name.decode("ascii")] = dict(sorted(timeframes.items()))
    return dict(sorted(symbols.items()))


def encode_history_start(timeframes: dict[int, int | float | None]) -> bytes:
    chunks = []
    for timeframe, start in timeframes.items():
        millis = HISTORY_NOT_AVAILABLE if start is None else int(round(start * 1000))
        chunks.append(_HISTORY_RECORD.pack(timeframe * 60_000, millis))
    return b"".join(chunks)


def _read_history_start_record(data: bytes, offset: int) -> tuple[int, int | float | None]:
    period, start = _HISTORY_RECORD.unpack_from(data, offset)
    timeframe, remainder = divmod(period, 60_000)
    if remainder or timeframe not in TIMEFRAMES:
        raise DecodeError(f"Unexpected history timeframe identifier: {period}")
    if start < 0:
        raise DecodeError(f"Invalid history start timestamp: {start} (out of range)")
    if start == HISTORY_NOT_AVAILABLE:
        return timeframe, None
    if start % 1000:
        return timeframe, round(start / 1000, 3)
    return timeframe, start // 1000


def _read_float(data: bytes, offset: int) -> float:
    chunk = data[offset : offset + 4]
    if _LITTLE_ENDIAN:
        chunk = chunk[::-1]
    return _NATIVE_FLOAT.unpack(chunk)[0]


def _write_float(value: float) -> bytes:
    chunk = _NATIVE_FLOAT.pack(value)
    if _LITTLE_ENDIAN:
        chunk = chunk[::-1]
    return chunk


__all__ = [
    "BAR_SIZE",
    "DukascopyBar",
    "DukascopyTick",
    "HISTORY_NOT_AVAILABLE",
    "HISTORY_START_SIZE",
    "HourTick",
    "TICK_SIZE",
    "TIMEFRAMES",
    "compress",
    "decode_bars",
    "decode_history_start",
    "decode_history_starts",
    "decode_hour_ticks",
    "decode_ticks",
    "decompress",
    "encode_history_start",
    "encode_ticks",
]
