from __future__ import annotations

from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover - import guard
    sys.path.insert(0, str(PROJECT_ROOT))

from tickdata.config import UpdateConfig
from tickdata.ingestion.bi5 import DukascopyTick, compress, encode_ticks
from tickdata.ingestion.dukascopy_client import TransportResponse
from tickdata.ingestion.symbols import TickSymbol


class FakeDatafeed:
    """Serves canned responses per URL; unknown URLs answer 404."""

    def __init__(self):
        self.responses = {}
        self.calls = []

    def serve(self, url, body, status=200):
        self.responses[url] = (status, body)

    def __call__(self, method, url, headers, timeout):
        self.calls.append(url)
        status, body = self.responses.get(url, (404, b"<html>Not Found</html>"))
        return TransportResponse(status_code=status, headers={}, body=body)

    def close(self):
        pass


def _hour_payload(count=3, *, step_ms=1_000, base=131_000):
    ticks = [
        DukascopyTick(time_delta=index * step_ms, ask=base + index + 3, bid=base + index, ask_size=1.0, bid_size=1.5)
        for index in range(count)
    ]
    return compress(encode_ticks(ticks))


@pytest.fixture()
def datafeed():
    return FakeDatafeed()


@pytest.fixture()
def hour_payload():
    return _hour_payload


@pytest.fixture()
def eurusd():
    # history starts Monday 07-Jan-2013 00:00 FXT
    return TickSymbol(
        name="EURUSD",
        instrument_type="forex",
        provider_name="EURUSD",
        digits=5,
        history_start=1357516800,
    )


@pytest.fixture()
def make_config(tmp_path):
    def _make(**overrides):
        return UpdateConfig(data_root=tmp_path / "data", **overrides)

    return _make
