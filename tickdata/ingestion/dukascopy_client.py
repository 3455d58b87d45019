"""Blocking HTTP client for the Dukascopy datafeed."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Mapping, Protocol

import httpx

from tickdata.config import DEFAULT_USER_AGENT
from tickdata.errors import TransportError

LOGGER = logging.getLogger(__name__)

STATUS_OK = 200
STATUS_NOT_FOUND = 404

REFERER = "http://www.dukascopy.com/free/candelabrum/"


@dataclass(frozen=True)
class TransportResponse:
    """Normalized response payload returned by transport callables."""

    status_code: int
    headers: Mapping[str, str]
    body: bytes


class _TransportProtocol(Protocol):
    def __call__(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        ...


class HttpxTransport:
    """Transport keeping one ``httpx.Client`` alive so connections are reused."""

    def __init__(self, *, verify_ssl: bool = False, client: httpx.Client | None = None) -> None:
        self._client = client or httpx.Client(verify=verify_ssl, follow_redirects=True)

    def __call__(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        timeout: float,
    ) -> TransportResponse:
        response = self._client.request(method, url, headers=dict(headers), timeout=timeout)
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers.items()),
            body=response.content,
        )

    def close(self) -> None:
        self._client.close()


class DukascopyClient:
    """Issues datafeed requests while presenting itself as a regular browser.

    Only 200 and 404 are expected answers; any other status, and any failure of the
    transport itself, raises :class:`~tickdata.errors.TransportError`.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        timeout: float | None = None,
        verify_ssl: bool = False,
        transport: _TransportProtocol | None = None,
    ) -> None:
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.timeout = timeout if timeout is not None else self.DEFAULT_TIMEOUT
        self.transport = transport or HttpxTransport(verify_ssl=verify_ssl)
        self.request_count = 0

    def __enter__(self) -> "DukascopyClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def get(self, url: str) -> TransportResponse:
        """GET ``url`` and return the response for status 200 or 404."""

        LOGGER.debug("GET %s", url)
        self.request_count += 1
        try:
            response = self.transport("GET", url, self._headers(), self.timeout)
        except httpx.HTTPError as exc:
            raise TransportError(f"Request for url \"{url}\" failed: {exc}", url=url) from exc

        if response.status_code not in (STATUS_OK, STATUS_NOT_FOUND):
            raise TransportError(
                f"Unexpected HTTP status {response.status_code} for url \"{url}\"",
                url=url,
                status_code=response.status_code,
            )
        return response

    def download(self, url: str) -> bytes:
        """Return the body for 200 responses; 404 and empty bodies yield ``b""``."""

        response = self.get(url)
        if response.status_code != STATUS_OK:
            LOGGER.info("URL not found (404): %s", url)
            return b""
        if not response.body:
            LOGGER.warning("Empty response for url: %s", url)
        return response.body

    def close(self) -> None:
        closer = getattr(self.transport, "close", None)
        if callable(closer):
            closer()

    def _headers(self) -> Mapping[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-us",
            "Accept-Charset": "ISO-8859-1,utf-8;q=0.7,*;q=0.7",
            "Connection": "keep-alive",
            "Cache-Control": "max-age=0",
            "Referer": REFERER,
        }


__all__ = [
    "DukascopyClient",
    "HttpxTransport",
    "STATUS_NOT_FOUND",
    "STATUS_OK",
    "TransportResponse",
]
