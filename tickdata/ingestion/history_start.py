"""Lookup of the first available history per timeframe from the provider metadata files."""

from __future__ import annotations

import logging
from typing import Sequence

from tickdata.ingestion.bi5 import decode_history_start, decode_history_starts, decompress
from tickdata.ingestion.dukascopy_client import DukascopyClient
from tickdata.ingestion.symbols import TickSymbol
from tickdata.paths import HistoryPathResolver, PathKind

LOGGER = logging.getLogger(__name__)


def fetch_history_start(
    client: DukascopyClient,
    resolver: HistoryPathResolver,
    symbol: TickSymbol,
) -> dict[int, int | float | None]:
    """Return ``{timeframe_minutes: start}`` for one symbol, or ``{}`` when unavailable."""

    url = resolver.resolve(PathKind.HISTORY_START_URL, symbol)
    content = client.download(url)
    if not content:
        return {}
    timeframes = decode_history_start(decompress(content))
    LOGGER.debug("History start of %s: %s", symbol.name, timeframes)
    return timeframes


def fetch_history_starts(
    client: DukascopyClient,
    resolver: HistoryPathResolver,
    symbols: Sequence[str] = (),
) -> dict[str, dict[int, int | float | None]]:
    """Return history starts of all provider symbols, optionally filtered to ``symbols``."""

    url = resolver.resolve(PathKind.HISTORY_START_URL)
    content = client.download(url)
    if not content:
        return {}
    starts = decode_history_starts(decompress(content))
    wanted = {name.upper() for name in symbols}
    if wanted:
        starts = {name: value for name, value in starts.items() if name.upper() in wanted}
    LOGGER.debug("History start available for %d provider symbols", len(starts))
    return starts


__all__ = ["fetch_history_start", "fetch_history_starts"]
