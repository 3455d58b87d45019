"""Reconciliation of a single (symbol, hour) against the local tick history."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
import logging

from tickdata.config import UpdateConfig
from tickdata.ingestion.bi5 import decode_hour_ticks, decompress
from tickdata.ingestion.fetcher import FetchOutcome, HourFetcher
from tickdata.ingestion.symbols import TickSymbol
from tickdata.paths import HistoryPathResolver, PathKind
from tickdata.storage.atomic import remove_dir_if_empty, remove_file
from tickdata.storage.tick_writer import RawTickWriter
from tickdata.timestamps import HourWindow, is_weekend

LOGGER = logging.getLogger(__name__)


class HourStatus(str, Enum):
    SATISFIED = "satisfied"
    UPDATED = "updated"
    NOT_FOUND = "not_found"
    EMPTY_RESPONSE = "empty_response"
    NON_TRADING = "non_trading"


class HourReconciler:
    """Makes sure one hour is either present locally or its absence is explained.

    Trading hours missing locally are loaded from the provider caches or downloaded,
    decoded and persisted. Provider caches and empty directories are cleaned up for
    every hour, trading or not. Decode, validation and persistence failures propagate.
    """

    def __init__(
        self,
        config: UpdateConfig,
        resolver: HistoryPathResolver,
        fetcher: HourFetcher,
        writer: RawTickWriter,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.fetcher = fetcher
        self.writer = writer
        self._last_day: int | None = None
        self._last_month: int | None = None

    def reconcile(self, symbol: TickSymbol, window: HourWindow) -> HourStatus:
        if is_weekend(window.fxt):
            status = HourStatus.NON_TRADING
        else:
            self._log_progress(window)
            status = self._reconcile_trading_hour(symbol, window)
        self._cleanup(symbol, window)
        return status

    def _reconcile_trading_hour(self, symbol: TickSymbol, window: HourWindow) -> HourStatus:
        if self._is_satisfied(symbol, window):
            return HourStatus.SATISFIED
        if self.resolver.path(PathKind.MARKER_NOT_FOUND, symbol, window.fxt).is_file():
            LOGGER.debug("%s %s: skipping hour marked as not found", symbol.name, window.label)
            return HourStatus.NOT_FOUND
        if self.resolver.path(PathKind.MARKER_EMPTY, symbol, window.fxt).is_file():
            LOGGER.debug("%s %s: skipping hour marked as empty", symbol.name, window.label)
            return HourStatus.EMPTY_RESPONSE

        raw, status = self._load(symbol, window)
        if status is not HourStatus.UPDATED:
            return status
        ticks = decode_hour_ticks(raw, window)
        self.writer.write_hour(symbol, window, ticks)
        return HourStatus.UPDATED

    def _is_satisfied(self, symbol: TickSymbol, window: HourWindow) -> bool:
        compressed = self.resolver.path(PathKind.LOCAL_TICKS_COMPRESSED, symbol, window.fxt)
        if compressed.is_file():
            if self.config.verbose > 1:
                LOGGER.info("[Ok] %s  compressed tick file: %s", window.label, self._relative(compressed))
            return True
        if self.config.save_raw_tick_files:
            raw = self.resolver.path(PathKind.LOCAL_TICKS_RAW, symbol, window.fxt)
            if raw.is_file():
                if self.config.verbose > 1:
                    LOGGER.info("[Ok] %s  uncompressed tick file: %s", window.label, self._relative(raw))
                return True
        return False

    def _load(self, symbol: TickSymbol, window: HourWindow) -> tuple[bytes, HourStatus]:
        # decompressed provider cache, then compressed provider cache, then download
        raw_cache = self.resolver.path(PathKind.PROVIDER_TICKS_RAW, symbol, window.gmt)
        if raw_cache.is_file():
            return raw_cache.read_bytes(), HourStatus.UPDATED

        save_as = raw_cache if self.config.save_raw_dukascopy_files else None
        compressed_cache = self.resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, symbol, window.gmt)
        if compressed_cache.is_file():
            return decompress(compressed_cache.read_bytes(), save_as=save_as), HourStatus.UPDATED

        result = self.fetcher.fetch(symbol, window, save_data=self.config.save_compressed_dukascopy_files)
        if result.outcome is FetchOutcome.NOT_FOUND:
            return b"", HourStatus.NOT_FOUND
        if result.outcome is FetchOutcome.EMPTY:
            return b"", HourStatus.EMPTY_RESPONSE
        return decompress(result.content, save_as=save_as), HourStatus.UPDATED

    def _cleanup(self, symbol: TickSymbol, window: HourWindow) -> None:
        if not self.config.save_compressed_dukascopy_files:
            remove_file(self.resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, symbol, window.gmt))
        if not self.config.save_raw_dukascopy_files:
            remove_file(self.resolver.path(PathKind.PROVIDER_TICKS_RAW, symbol, window.gmt))
        remove_dir_if_empty(self.resolver.path(PathKind.LOCAL_DIR, symbol, window.gmt))
        if is_weekend(window.fxt):
            remove_dir_if_empty(self.resolver.path(PathKind.LOCAL_DIR, symbol, window.fxt))

    def _log_progress(self, window: HourWindow) -> None:
        moment = datetime.fromtimestamp(window.fxt, tz=timezone.utc)
        if moment.day == self._last_day:
            return
        if self.config.verbose > 1:
            LOGGER.info("%s", moment.strftime("%d-%b-%Y"))
        elif moment.month != self._last_month:
            if self.config.verbose > 0:
                LOGGER.info("%s", moment.strftime("%b-%Y"))
            self._last_month = moment.month
        self._last_day = moment.day

    def _relative(self, path) -> str:
        try:
            return str(path.relative_to(self.resolver.history_root))
        except ValueError:
            return str(path)


__all__ = ["HourReconciler", "HourStatus"]
