"""Deterministic resolution of every local path and remote URL touched by the pipeline."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from enum import Enum
import os
from pathlib import Path
from typing import TYPE_CHECKING

from tickdata.errors import ArgumentError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from tickdata.ingestion.symbols import TickSymbol


_REPO_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_BASE_URL = "http://datafeed.dukascopy.com/datafeed"
DEFAULT_CACHE_SIZE = 128


def get_repo_root() -> Path:
    """Return the repository root for callers that need absolute resolution."""

    return _REPO_ROOT


def get_data_root() -> Path:
    """Resolve the runtime data root honoring the TICKDATA_DATA_ROOT override."""

    override = os.environ.get("TICKDATA_DATA_ROOT")
    if override:
        return Path(override).expanduser()
    return get_repo_root() / ".tickdata"


def history_root(data_root: Path | str | None = None) -> Path:
    """Base directory for per-symbol tick history."""

    base = Path(data_root).expanduser() if data_root is not None else get_data_root()
    return base / "history"


class PathKind(Enum):
    """Closed set of artifacts the resolver knows how to locate."""

    LOCAL_DIR_DATE = "local_dir_date"
    LOCAL_DIR = "local_dir"
    LOCAL_TICKS_RAW = "local_ticks_raw"
    LOCAL_TICKS_COMPRESSED = "local_ticks_compressed"
    PROVIDER_TICKS_RAW = "provider_ticks_raw"
    PROVIDER_TICKS_COMPRESSED = "provider_ticks_compressed"
    REMOTE_URL_DATE = "remote_url_date"
    REMOTE_URL = "remote_url"
    MARKER_NOT_FOUND = "marker_not_found"
    MARKER_EMPTY = "marker_empty"
    HISTORY_START_URL = "history_start_url"

    @property
    def needs_symbol(self) -> bool:
        return _REQUIREMENTS[self][0]

    @property
    def needs_time(self) -> bool:
        return _REQUIREMENTS[self][1]


# (needs_symbol, needs_time); HISTORY_START_URL takes an optional symbol
_REQUIREMENTS: dict[PathKind, tuple[bool, bool]] = {
    PathKind.LOCAL_DIR_DATE: (False, True),
    PathKind.LOCAL_DIR: (True, True),
    PathKind.LOCAL_TICKS_RAW: (True, True),
    PathKind.LOCAL_TICKS_COMPRESSED: (True, True),
    PathKind.PROVIDER_TICKS_RAW: (True, True),
    PathKind.PROVIDER_TICKS_COMPRESSED: (True, True),
    PathKind.REMOTE_URL_DATE: (False, True),
    PathKind.REMOTE_URL: (True, True),
    PathKind.MARKER_NOT_FOUND: (True, True),
    PathKind.MARKER_EMPTY: (True, True),
    PathKind.HISTORY_START_URL: (False, False),
}


# file name suffix appended to "{HH}h_ticks" inside the hour's directory
_FILE_SUFFIXES = {
    PathKind.LOCAL_TICKS_RAW: ".bin",
    PathKind.LOCAL_TICKS_COMPRESSED: ".rar",
    PathKind.PROVIDER_TICKS_RAW: ".dat",
    PathKind.PROVIDER_TICKS_COMPRESSED: ".bi5",
    PathKind.MARKER_NOT_FOUND: ".404",
    PathKind.MARKER_EMPTY: ".na",
}


class HistoryPathResolver:
    """Memoizing resolver for history paths and provider URLs.

    Results are a pure function of ``(kind, symbol, time)``. The memo is owned by the
    instance and bounded to ``cache_size`` entries, evicting the least recently used key.
    """

    def __init__(
        self,
        data_root: Path | str | None = None,
        *,
        base_url: str | None = None,
        cache_size: int = DEFAULT_CACHE_SIZE,
    ) -> None:
        if cache_size < 1:
            raise ArgumentError(f"cache_size must be positive, got {cache_size}")
        self.history_root = history_root(data_root)
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.cache_size = cache_size
        self._cache: OrderedDict[tuple[PathKind, tuple[str, str, str | None] | None, int | None], str] = OrderedDict()

    def resolve(self, kind: PathKind, symbol: "TickSymbol | None" = None, time: int | None = None) -> str:
        """Return the path or URL of ``kind`` for the given symbol and timestamp."""

        if not isinstance(kind, PathKind):
            raise ArgumentError(f"Unknown path kind: {kind!r}")
        key = (kind, _symbol_key(symbol), time)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        self._check_arguments(kind, symbol, time)
        result = self._build(kind, symbol, time)

        self._cache[key] = result
        if len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return result

    def path(self, kind: PathKind, symbol: "TickSymbol | None" = None, time: int | None = None) -> Path:
        return Path(self.resolve(kind, symbol, time))

    def cache_info(self) -> dict[str, int]:
        return {"size": len(self._cache), "capacity": self.cache_size}

    def _check_arguments(self, kind: PathKind, symbol: "TickSymbol | None", time: int | None) -> None:
        if kind.needs_time:
            if time is None or isinstance(time, bool) or not isinstance(time, int) or time <= 0:
                raise ArgumentError(f"Invalid time for {kind.name}: {time!r}")
        if kind.needs_symbol and symbol is None:
            raise ArgumentError(f"A symbol is required for {kind.name}")

    def _build(self, kind: PathKind, symbol: "TickSymbol | None", time: int | None) -> str:
        if kind is PathKind.LOCAL_DIR_DATE:
            return _utc(time).strftime("%Y/%m/%d")
        if kind is PathKind.LOCAL_DIR:
            date_dir = self.resolve(PathKind.LOCAL_DIR_DATE, None, time)
            return str(self.history_root / symbol.instrument_type / symbol.name / date_dir)
        if kind in _FILE_SUFFIXES:
            directory = self.resolve(PathKind.LOCAL_DIR, symbol, time)
            return str(Path(directory) / f"{_utc(time):%H}h_ticks{_FILE_SUFFIXES[kind]}")
        if kind is PathKind.REMOTE_URL_DATE:
            moment = _utc(time)
            # provider months are zero-based: January = 00
            return f"{moment:%Y}/{moment.month - 1:02d}/{moment:%d}"
        if kind is PathKind.REMOTE_URL:
            if not symbol.provider_name:
                raise ArgumentError(f"Symbol {symbol.name} has no provider mapping")
            url_date = self.resolve(PathKind.REMOTE_URL_DATE, None, time)
            return f"{self.base_url}/{symbol.provider_name.upper()}/{url_date}/{_utc(time):%H}h_ticks.bi5"
        if kind is PathKind.HISTORY_START_URL:
            if symbol is None:
                return f"{self.base_url}/metadata/HistoryStart.bi5"
            if not symbol.provider_name:
                raise ArgumentError(f"Symbol {symbol.name} has no provider mapping")
            return f"{self.base_url}/{symbol.provider_name.upper()}/metadata/HistoryStart.bi5"
        raise ArgumentError(f"Unknown path kind: {kind!r}")  # pragma: no cover - enum is closed


def _utc(time: int) -> datetime:
    return datetime.fromtimestamp(time, tz=timezone.utc)


def _symbol_key(symbol: "TickSymbol | None") -> tuple[str, str, str | None] | None:
    # every symbol field that ends up in a path or URL
    if symbol is None:
        return None
    return (symbol.name, symbol.instrument_type, symbol.provider_name)


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_CACHE_SIZE",
    "HistoryPathResolver",
    "PathKind",
    "get_data_root",
    "get_repo_root",
    "history_root",
]
