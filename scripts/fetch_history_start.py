#!/usr/bin/env python3
"""Print the provider's history start per timeframe for one symbol or for all symbols."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from tickdata.config import UpdateConfig, default_config_path, load_config_mapping
from tickdata.errors import TickDataError
from tickdata.ingestion.bi5 import TIMEFRAMES
from tickdata.ingestion.dukascopy_client import DukascopyClient
from tickdata.ingestion.history_start import fetch_history_start, fetch_history_starts
from tickdata.ingestion.symbols import StaticSymbolCatalog, TickSymbol
from tickdata.paths import HistoryPathResolver
from tickdata.timestamps import coerce_timestamp

LOGGER = logging.getLogger("scripts.fetch_history_start")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Download and decode Dukascopy HistoryStart files.")
    parser.add_argument("symbol", nargs="?", help="Symbol to query (default: all provider symbols).")
    parser.add_argument("--config", help="Optional YAML or JSON tick data config.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Enable debug logging with -vvv.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose > 2 else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config_path = Path(args.config) if args.config else default_config_path()

    try:
        payload: Mapping[str, Any] = load_config_mapping(config_path) if config_path.exists() else {}
        config = UpdateConfig.from_mapping(payload)
        catalog = StaticSymbolCatalog.from_mapping(payload.get("symbols"))
    except (OSError, ValueError, TickDataError) as exc:
        return _emit_summary({"status": "failed", "error": str(exc)})

    resolver = HistoryPathResolver(config.data_root, base_url=config.base_url, cache_size=config.path_cache_size)
    with DukascopyClient(user_agent=config.user_agent, timeout=config.timeout, verify_ssl=config.verify_ssl) as client:
        try:
            if args.symbol:
                symbol = _resolve_symbol(catalog, args.symbol)
                starts = {symbol.provider_name: fetch_history_start(client, resolver, symbol)}
            else:
                starts = fetch_history_starts(client, resolver)
        except TickDataError as exc:
            LOGGER.error("%s", exc)
            return _emit_summary({"status": "failed", "error": str(exc)})

    return _emit_summary(
        {
            "status": "succeeded" if any(starts.values()) else "failed",
            "symbols": {name: _format_starts(value) for name, value in starts.items()},
        }
    )


def _resolve_symbol(catalog: StaticSymbolCatalog, name: str) -> TickSymbol:
    symbol = catalog.find(name)
    if symbol is not None and symbol.is_mapped:
        return symbol
    # unknown locally: query the provider under the given name
    return TickSymbol(name=name.upper(), instrument_type="forex", provider_name=name.upper(), digits=5)


def _format_starts(timeframes: Mapping[int, int | float | None]) -> dict[str, str | None]:
    formatted: dict[str, str | None] = {}
    for timeframe, start in timeframes.items():
        formatted[TIMEFRAMES[timeframe]] = coerce_timestamp(start, epoch_unit="s").isoformat() if start is not None else None
    return formatted


def _emit_summary(summary: Mapping[str, Any]) -> int:
    print(json.dumps(summary, indent=2, sort_keys=True))
    return 0 if summary.get("status") == "succeeded" else 1


if __name__ == "__main__":
    raise SystemExit(main())
