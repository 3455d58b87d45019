from __future__ import annotations

import logging
from pathlib import Path
import sys

import httpx
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover - import guard
    sys.path.insert(0, str(PROJECT_ROOT))

from tickdata.errors import TransportError
from tickdata.ingestion.dukascopy_client import DukascopyClient, HttpxTransport, TransportResponse

URL = "http://datafeed.dukascopy.com/datafeed/EURUSD/2013/00/07/05h_ticks.bi5"


class _FakeTransport:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def __call__(self, method, url, headers, timeout):
        self.calls.append({"method": method, "url": url, "headers": dict(headers), "timeout": timeout})
        if not self.responses:
            raise AssertionError("transport called more times than expected")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        status, body = response
        return TransportResponse(status_code=status, headers={}, body=body)

    def close(self):
        self.closed = True


def test_client_sends_browser_headers() -> None:
    transport = _FakeTransport([(200, b"payload")])
    client = DukascopyClient(user_agent="Mozilla/5.0 test", timeout=12.0, transport=transport)

    response = client.get(URL)

    assert response.body == b"payload"
    call = transport.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == URL
    assert call["timeout"] == 12.0
    headers = call["headers"]
    assert headers["User-Agent"] == "Mozilla/5.0 test"
    assert headers["Connection"] == "keep-alive"
    assert headers["Cache-Control"] == "max-age=0"
    assert headers["Accept-Language"] == "en-us"
    assert headers["Referer"] == "http://www.dukascopy.com/free/candelabrum/"
    assert client.request_count == 1


def test_not_found_is_a_regular_response() -> None:
    client = DukascopyClient(transport=_FakeTransport([(404, b"<html>missing</html>")]))
    assert client.get(URL).status_code == 404


@pytest.mark.parametrize("status", [301, 403, 500, 503])
def test_unexpected_status_raises_transport_error(status) -> None:
    client = DukascopyClient(transport=_FakeTransport([(status, b"")]))
    with pytest.raises(TransportError) as excinfo:
        client.get(URL)
    assert excinfo.value.status_code == status
    assert excinfo.value.url == URL


def test_transport_failure_raises_transport_error() -> None:
    client = DukascopyClient(transport=_FakeTransport([httpx.ConnectError("connection refused")]))
    with pytest.raises(TransportError, match="connection refused"):
        client.get(URL)


def test_download_treats_404_and_empty_as_absent(caplog) -> None:
    caplog.set_level(logging.INFO, logger="tickdata.ingestion.dukascopy_client")
    client = DukascopyClient(transport=_FakeTransport([(404, b"not here"), (200, b""), (200, b"data")]))
    assert client.download(URL) == b""
    assert client.download(URL) == b""
    assert client.download(URL) == b"data"

    levels = [(record.levelno, record.getMessage()) for record in caplog.records]
    assert levels == [
        (logging.INFO, f"URL not found (404): {URL}"),
        (logging.WARNING, f"Empty response for url: {URL}"),
    ]


def test_context_manager_closes_transport() -> None:
    transport = _FakeTransport([])
    with DukascopyClient(transport=transport):
        pass
    assert transport.closed


def test_httpx_transport_normalizes_response() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["User-Agent"] == "agent"
        return httpx.Response(200, content=b"\x5d\x00\x00", headers={"Content-Type": "application/octet-stream"})

    transport = HttpxTransport(client=httpx.Client(transport=httpx.MockTransport(_handler)))
    try:
        response = transport("GET", URL, {"User-Agent": "agent"}, 5.0)
    finally:
        transport.close()
    assert response.status_code == 200
    assert response.body == b"\x5d\x00\x00"
    assert response.headers["content-type"] == "application/octet-stream"
