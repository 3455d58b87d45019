"""Persistence of normalized hour ticks in the local tick file format."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import struct
from typing import TYPE_CHECKING, Sequence

from tickdata.errors import DecodeError
from tickdata.ingestion.bi5 import HourTick, compress, decompress
from tickdata.paths import HistoryPathResolver, PathKind
from tickdata.storage.atomic import write_bytes_atomic
from tickdata.timestamps import HourWindow
from tickdata.validation import validate_hour_ticks

if TYPE_CHECKING:  # pragma: no cover - typing only
    from tickdata.ingestion.symbols import TickSymbol

LOGGER = logging.getLogger(__name__)

# timeDelta, bid, ask; the provider's size fields are not persisted
LOCAL_TICK = struct.Struct("<III")
LOCAL_TICK_SIZE = LOCAL_TICK.size


@dataclass(frozen=True)
class LocalTick:
    time_delta: int
    bid: int
    ask: int


def encode_local_ticks(ticks: Sequence[HourTick]) -> bytes:
    return b"".join(LOCAL_TICK.pack(tick.time_delta, tick.bid, tick.ask) for tick in ticks)


def decode_local_ticks(data: bytes) -> list[LocalTick]:
    if len(data) % LOCAL_TICK_SIZE:
        raise DecodeError(f"Odd length of local tick data: {len(data)} (not a multiple of {LOCAL_TICK_SIZE})")
    return [LocalTick(*fields) for fields in LOCAL_TICK.iter_unpack(data)]


def read_tick_file(path: Path | str) -> list[LocalTick]:
    """Read an uncompressed local tick file, or a compressed one when it ends in ``.rar``."""

    target = Path(path)
    data = target.read_bytes()
    if target.suffix == ".rar":
        data = decompress(data)
    return decode_local_ticks(data)


class RawTickWriter:
    """Writes one validated hour of ticks into the FXT-dated local history layout."""

    def __init__(
        self,
        resolver: HistoryPathResolver,
        *,
        save_raw: bool = True,
        save_compressed: bool = False,
    ) -> None:
        self.resolver = resolver
        self.save_raw = save_raw
        self.save_compressed = save_compressed

    def write_hour(self, symbol: "TickSymbol", window: HourWindow, ticks: Sequence[HourTick]) -> list[Path]:
        """Persist ``ticks`` and return the written paths.

        Raises :class:`~tickdata.errors.PersistConflict` when a target file already exists.
        """

        validate_hour_ticks(ticks, window)
        data = encode_local_ticks(ticks)
        written: list[Path] = []

        if self.save_raw:
            target = self.resolver.path(PathKind.LOCAL_TICKS_RAW, symbol, window.fxt)
            write_bytes_atomic(target, data, replace=False)
            written.append(target)

        if self.save_compressed:
            target = self.resolver.path(PathKind.LOCAL_TICKS_COMPRESSED, symbol, window.fxt)
            write_bytes_atomic(target, compress(data), replace=False)
            written.append(target)

        LOGGER.debug("Stored %d %s ticks for %s", len(ticks), symbol.name, window.label)
        return written


__all__ = [
    "LOCAL_TICK_SIZE",
    "LocalTick",
    "RawTickWriter",
    "decode_local_ticks",
    "encode_local_ticks",
    "read_tick_file",
]
