"""Download of one provider hour with marker bookkeeping for absent data."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging

from tickdata.ingestion.dukascopy_client import STATUS_NOT_FOUND, DukascopyClient
from tickdata.ingestion.symbols import TickSymbol
from tickdata.paths import HistoryPathResolver, PathKind
from tickdata.storage.atomic import remove_file, touch_marker, write_bytes_atomic
from tickdata.timestamps import HourWindow

LOGGER = logging.getLogger(__name__)


class FetchOutcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    EMPTY = "empty"


@dataclass(frozen=True)
class FetchResult:
    content: bytes
    outcome: FetchOutcome

    @property
    def ok(self) -> bool:
        return self.outcome is FetchOutcome.OK


class HourFetcher:
    """Fetches the compressed ticks of one GMT hour.

    A missing file (404) and an empty 200 response are reported as outcomes and, when
    ``save_errors`` is set, remembered as ``.404`` / ``.na`` markers next to the local
    tick files. Any other failure raises :class:`~tickdata.errors.TransportError`.
    """

    def __init__(self, client: DukascopyClient, resolver: HistoryPathResolver) -> None:
        self.client = client
        self.resolver = resolver

    def fetch(
        self,
        symbol: TickSymbol,
        window: HourWindow,
        *,
        save_data: bool = False,
        save_errors: bool = True,
    ) -> FetchResult:
        url = self.resolver.resolve(PathKind.REMOTE_URL, symbol, window.gmt)
        response = self.client.get(url)

        if response.status_code == STATUS_NOT_FOUND:
            LOGGER.info("%s %s: file not found (404) %s", symbol.name, window.label, url)
            if save_errors:
                touch_marker(self.resolver.path(PathKind.MARKER_NOT_FOUND, symbol, window.fxt))
            return FetchResult(b"", FetchOutcome.NOT_FOUND)

        if not response.body:
            LOGGER.warning("%s %s: empty response %s", symbol.name, window.label, url)
            if save_errors:
                touch_marker(self.resolver.path(PathKind.MARKER_EMPTY, symbol, window.fxt))
            return FetchResult(b"", FetchOutcome.EMPTY)

        remove_file(self.resolver.path(PathKind.MARKER_NOT_FOUND, symbol, window.fxt))
        remove_file(self.resolver.path(PathKind.MARKER_EMPTY, symbol, window.fxt))
        if save_data:
            write_bytes_atomic(self.resolver.path(PathKind.PROVIDER_TICKS_COMPRESSED, symbol, window.gmt), response.body)
        return FetchResult(response.body, FetchOutcome.OK)


__all__ = ["FetchOutcome", "FetchResult", "HourFetcher"]
