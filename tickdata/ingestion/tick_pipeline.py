"""Per-symbol orchestration of the hourly tick history update."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time as _time
from typing import Any, Callable, Dict

from tickdata.config import UpdateConfig
from tickdata.ingestion.dukascopy_client import DukascopyClient
from tickdata.ingestion.fetcher import HourFetcher
from tickdata.ingestion.reconciler import HourReconciler, HourStatus
from tickdata.ingestion.symbols import TickSymbol
from tickdata.paths import HistoryPathResolver
from tickdata.storage.tick_writer import RawTickWriter
from tickdata.timestamps import (
    HOUR,
    HourWindow,
    format_fxt,
    fxt_timezone_offset,
    fxt_to_gmt,
    gmt_to_fxt,
    hour_start,
    next_fxt_day_start,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdatePlan:
    """Half-open GMT hour range ``[start_gmt, end_gmt)`` scheduled for one symbol."""

    symbol: str
    start_gmt: int
    start_fxt: int
    end_gmt: int

    @property
    def hours(self) -> int:
        return max(0, (self.end_gmt - self.start_gmt) // HOUR)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "start_fxt": format_fxt(self.start_fxt),
            "start_gmt": self.start_gmt,
            "end_gmt": self.end_gmt,
            "hours": self.hours,
        }


@dataclass
class SymbolUpdateSummary:
    symbol: str
    status: str = "succeeded"
    interrupted: bool = False
    hours: Dict[str, int] = field(default_factory=lambda: {status.value: 0 for status in HourStatus})
    last_hour_fxt: int | None = None

    @property
    def hours_processed(self) -> int:
        return sum(self.hours.values())

    def record(self, window: HourWindow, status: HourStatus) -> None:
        self.hours[status.value] += 1
        self.last_hour_fxt = window.fxt

    def as_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "status": self.status,
            "interrupted": self.interrupted,
            "hours_processed": self.hours_processed,
            "hours": dict(self.hours),
            "last_hour_fxt": format_fxt(self.last_hour_fxt) if self.last_hour_fxt is not None else None,
        }


class TickUpdatePipeline:
    """Walks a symbol's history hour by hour from its first trading day to the last completed hour.

    The current and the previous hour are never requested since the provider may still
    be assembling them. Stopping is cooperative: ``should_stop`` is polled once per hour.
    """

    def __init__(
        self,
        *,
        reconciler: HourReconciler,
        client: DukascopyClient | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.reconciler = reconciler
        self.client = client
        self.clock = clock or _time.time

    @classmethod
    def from_config(cls, config: UpdateConfig, transport=None) -> "TickUpdatePipeline":
        resolver = HistoryPathResolver(config.data_root, base_url=config.base_url, cache_size=config.path_cache_size)
        client = DukascopyClient(
            user_agent=config.user_agent,
            timeout=config.timeout,
            verify_ssl=config.verify_ssl,
            transport=transport,
        )
        writer = RawTickWriter(
            resolver,
            save_raw=config.save_raw_tick_files,
            save_compressed=config.save_compressed_tick_files,
        )
        reconciler = HourReconciler(config, resolver, HourFetcher(client, resolver), writer)
        return cls(reconciler=reconciler, client=client)

    def __enter__(self) -> "TickUpdatePipeline":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self.client is not None:
            self.client.close()

    def plan(self, symbol: TickSymbol, now: int | None = None) -> UpdatePlan | None:
        """Return the hour range an update would walk, or ``None`` without a history start."""

        if symbol.history_start is None:
            return None
        start_gmt, start_fxt, _, _, _ = next_fxt_day_start(fxt_to_gmt(symbol.history_start))
        current = int(now if now is not None else self.clock())
        return UpdatePlan(
            symbol=symbol.name,
            start_gmt=start_gmt,
            start_fxt=start_fxt,
            end_gmt=hour_start(current) - HOUR,
        )

    def update_symbol(
        self,
        symbol: TickSymbol,
        *,
        now: int | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> SymbolUpdateSummary:
        """Bring the local history of ``symbol`` up to date.

        Errors raised while reconciling an hour propagate; hours persisted before the
        failure stay valid.
        """

        summary = SymbolUpdateSummary(symbol=symbol.name)
        plan = self.plan(symbol, now=now)
        if plan is None:
            LOGGER.warning("%s: history start unknown, skipping", symbol.name)
            summary.status = "skipped"
            return summary

        LOGGER.info("%s: updating from %s", symbol.name, format_fxt(plan.start_fxt))
        gmt = plan.start_gmt
        offset, _, following = fxt_timezone_offset(gmt)
        while gmt < plan.end_gmt:
            if should_stop is not None and should_stop():
                LOGGER.warning("%s: update interrupted before %s", symbol.name, format_fxt(gmt_to_fxt(gmt)))
                summary.status = "interrupted"
                summary.interrupted = True
                break
            if following is not None and gmt >= following.time:
                offset, _, following = fxt_timezone_offset(gmt)
            window = HourWindow(gmt=gmt, fxt=gmt + offset)
            summary.record(window, self.reconciler.reconcile(symbol, window))
            gmt += HOUR

        LOGGER.info(
            "%s: %d hours checked, %d updated",
            symbol.name,
            summary.hours_processed,
            summary.hours[HourStatus.UPDATED.value],
        )
        return summary


__all__ = ["SymbolUpdateSummary", "TickUpdatePipeline", "UpdatePlan"]
