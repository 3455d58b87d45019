"""Read-only symbol handles and the config-backed catalog that provides them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Mapping, Protocol, Sequence

from tickdata.errors import ArgumentError
from tickdata.timestamps import to_epoch_seconds


@dataclass(frozen=True)
class TickSymbol:
    """Instrument as seen by the pipeline.

    ``history_start`` is the FXT timestamp of the first available tick, or ``None``
    when the provider's history start is unknown.
    """

    name: str
    instrument_type: str
    provider_name: str | None
    digits: int
    history_start: int | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ArgumentError("symbol name must be provided")
        if not self.instrument_type:
            raise ArgumentError(f"instrument type must be provided for {self.name}")
        if self.digits < 0:
            raise ArgumentError(f"digits must be non-negative for {self.name}, got {self.digits}")

    @property
    def point(self) -> float:
        return 10.0**-self.digits

    @property
    def is_mapped(self) -> bool:
        return bool(self.provider_name)


class SymbolCatalog(Protocol):
    """Narrow lookup interface the pipeline needs from an instrument catalog."""

    def find(self, name: str) -> TickSymbol | None:
        ...

    def all_mapped(self) -> Sequence[TickSymbol]:
        ...


class StaticSymbolCatalog:
    """In-memory catalog built from the ``symbols`` block of the configuration."""

    def __init__(self, symbols: Sequence[TickSymbol] = ()) -> None:
        self._symbols: dict[str, TickSymbol] = {}
        for symbol in symbols:
            key = symbol.name.upper()
            if key in self._symbols:
                raise ArgumentError(f"duplicate symbol '{symbol.name}' in catalog")
            self._symbols[key] = symbol

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None) -> "StaticSymbolCatalog":
        if payload is None:
            return cls()
        if isinstance(payload, Mapping):
            entries = [(str(name), _coerce_mapping(block, str(name))) for name, block in payload.items()]
        elif isinstance(payload, Sequence) and not isinstance(payload, str):
            entries = []
            for block in payload:
                block = _coerce_mapping(block, "<unnamed>")
                entries.append((str(block.get("name", "")), block))
        else:
            raise ArgumentError("symbols configuration must be a mapping or a list of mappings")
        return cls([_build_symbol(name, block) for name, block in entries])

    def find(self, name: str) -> TickSymbol | None:
        return self._symbols.get(str(name).strip().upper())

    def all_mapped(self) -> list[TickSymbol]:
        return sorted((symbol for symbol in self._symbols.values() if symbol.is_mapped), key=lambda item: item.name)

    def __iter__(self) -> Iterator[TickSymbol]:
        return iter(sorted(self._symbols.values(), key=lambda item: item.name))

    def __len__(self) -> int:
        return len(self._symbols)


def _build_symbol(name: str, block: Mapping[str, Any]) -> TickSymbol:
    normalized_name = name.strip().upper()
    if not normalized_name:
        raise ArgumentError("symbol entries must carry a name")
    provider = block.get("dukascopy", block.get("provider_name"))
    provider_name = str(provider).strip().upper() if provider else None
    history_start = block.get("history_start")
    try:
        digits = int(block.get("digits", 5))
        start = to_epoch_seconds(history_start) if history_start not in (None, "") else None
    except (TypeError, ValueError) as exc:
        raise ArgumentError(f"invalid catalog entry for {normalized_name}: {exc}") from exc
    return TickSymbol(
        name=normalized_name,
        instrument_type=str(block.get("type", "forex")).strip().lower(),
        provider_name=provider_name or None,
        digits=digits,
        history_start=start,
    )


def _coerce_mapping(value: Any, name: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ArgumentError(f"catalog entry for {name} must be a mapping")
    return dict(value)


__all__ = ["StaticSymbolCatalog", "SymbolCatalog", "TickSymbol"]
