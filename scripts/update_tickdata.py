#!/usr/bin/env python3
"""Update the local FXT tick history of one, several or all mapped symbols."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from pathlib import Path
from typing import Any, Mapping, Sequence

from tickdata.config import UpdateConfig, default_config_path, load_config_mapping
from tickdata.errors import TickDataError
from tickdata.ingestion.symbols import StaticSymbolCatalog, SymbolCatalog, TickSymbol
from tickdata.ingestion.tick_pipeline import TickUpdatePipeline

LOGGER = logging.getLogger("scripts.update_tickdata")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Update the locally stored Dukascopy tick history.")
    parser.add_argument("symbols", nargs="*", help="Symbols to update (default: all mapped symbols).")
    parser.add_argument("--config", help="Path to the YAML or JSON tick data config.")
    parser.add_argument("--data-root", help="Optional override for the runtime data root.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase progress output (-v months, -vv days and cached hours, -vvv debug).",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the planned hour ranges without fetching.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config_path = Path(args.config) if args.config else default_config_path()

    try:
        payload = load_config_mapping(config_path)
        config = UpdateConfig.from_mapping(payload, data_root=args.data_root)
        if args.verbose:
            config = config.with_overrides(verbose=args.verbose)
        catalog = StaticSymbolCatalog.from_mapping(payload.get("symbols"))
        symbols = _select_symbols(catalog, args.symbols)
    except (OSError, ValueError, TickDataError) as exc:
        return _emit_summary(_failure_summary(config_path, str(exc)))

    with TickUpdatePipeline.from_config(config) as pipeline:
        if args.dry_run:
            return _emit_summary(_dry_run_summary(pipeline, symbols, config_path))
        return _emit_summary(_run_updates(pipeline, symbols, config_path))


def _select_symbols(catalog: SymbolCatalog, names: Sequence[str]) -> list[TickSymbol]:
    if not names:
        return catalog.all_mapped()
    selected: list[TickSymbol] = []
    for name in names:
        symbol = catalog.find(name)
        if symbol is None:
            raise ValueError(f"Unknown symbol '{name}'")
        if not symbol.is_mapped:
            raise ValueError(f"Symbol '{symbol.name}' has no Dukascopy mapping")
        if symbol not in selected:
            selected.append(symbol)
    return selected


def _run_updates(pipeline: TickUpdatePipeline, symbols: Sequence[TickSymbol], config_path: Path) -> Mapping[str, Any]:
    stop = threading.Event()
    previous_handler = _install_interrupt_handler(stop)
    results: list[Mapping[str, Any]] = []
    failed = False
    try:
        for symbol in symbols:
            if stop.is_set():
                break
            try:
                summary = pipeline.update_symbol(symbol, should_stop=stop.is_set)
            except TickDataError as exc:
                LOGGER.error("%s: %s", symbol.name, exc)
                results.append({"symbol": symbol.name, "status": "failed", "error": str(exc)})
                failed = True
                continue
            results.append(summary.as_dict())
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    if failed:
        status = "failed"
    elif stop.is_set():
        status = "interrupted"
    else:
        status = "succeeded"
    return {"status": status, "config_path": str(config_path), "symbols": results}


def _install_interrupt_handler(stop: threading.Event):
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame) -> None:
        LOGGER.warning("Interrupt received, finishing the current hour")
        stop.set()

    return signal.signal(signal.SIGINT, _handler)


def _dry_run_summary(pipeline: TickUpdatePipeline, symbols: Sequence[TickSymbol], config_path: Path) -> Mapping[str, Any]:
    plans = []
    for symbol in symbols:
        plan = pipeline.plan(symbol)
        plans.append(plan.as_dict() if plan is not None else {"symbol": symbol.name, "hours": 0, "skipped": True})
    return {"status": "dry_run", "config_path": str(config_path), "symbols": plans}


def _failure_summary(config_path: Path, error: str) -> Mapping[str, Any]:
    return {"status": "failed", "config_path": str(config_path), "error": error, "symbols": []}


def _emit_summary(summary: Mapping[str, Any]) -> int:
    print(json.dumps(summary, indent=2, sort_keys=True))
    status = summary.get("status")
    if status in {"succeeded", "dry_run"}:
        return 0
    return 1


def _configure_logging(verbose: int) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose > 2 else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    raise SystemExit(main())
