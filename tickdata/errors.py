"""Error taxonomy shared by the tick acquisition pipeline."""

from __future__ import annotations


class TickDataError(RuntimeError):
    """Base error for failures that abort the processing of a symbol."""


class ArgumentError(TickDataError, ValueError):
    """Raised for invalid caller-supplied timestamps, symbols, path kinds or config values."""


class TransportError(TickDataError):
    """Raised when the provider answers with an unexpected HTTP status or the request fails."""

    def __init__(self, message: str, *, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DecodeError(TickDataError):
    """Raised for malformed record lengths or structurally inconsistent tick batches."""


class PersistConflict(TickDataError):
    """Raised when a local tick file already exists at the moment it is about to be written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


__all__ = [
    "ArgumentError",
    "DecodeError",
    "PersistConflict",
    "TickDataError",
    "TransportError",
]
