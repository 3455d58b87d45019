"""Configuration loader for tick history updates."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from tickdata.errors import ArgumentError
from tickdata.paths import DEFAULT_BASE_URL, DEFAULT_CACHE_SIZE, get_data_root, get_repo_root

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


@dataclass(frozen=True)
class UpdateConfig:
    """Knobs controlling acquisition, caching and persistence of tick history."""

    data_root: Path
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 30.0
    verify_ssl: bool = False
    path_cache_size: int = DEFAULT_CACHE_SIZE
    save_compressed_dukascopy_files: bool = False
    save_raw_dukascopy_files: bool = False
    save_raw_tick_files: bool = True
    save_compressed_tick_files: bool = False
    verbose: int = 0

    def __post_init__(self) -> None:
        if not self.save_raw_tick_files and not self.save_compressed_tick_files:
            raise ArgumentError("at least one of save_raw_tick_files/save_compressed_tick_files must be enabled")
        if self.timeout <= 0:
            raise ArgumentError("timeout must be positive")
        if self.path_cache_size < 1:
            raise ArgumentError("path_cache_size must be positive")
        if not self.user_agent:
            raise ArgumentError(f"Invalid user agent configuration: {self.user_agent!r}")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None, *, data_root: Path | str | None = None) -> "UpdateConfig":
        block = dict(payload or {})
        root = data_root or block.get("data_root")
        return cls(
            data_root=Path(root).expanduser() if root else get_data_root(),
            base_url=str(block.get("base_url", DEFAULT_BASE_URL)).rstrip("/"),
            user_agent=str(block.get("user_agent", DEFAULT_USER_AGENT)),
            timeout=float(block.get("timeout", cls.timeout)),
            verify_ssl=bool(block.get("verify_ssl", cls.verify_ssl)),
            path_cache_size=int(block.get("path_cache_size", cls.path_cache_size)),
            save_compressed_dukascopy_files=bool(
                block.get("save_compressed_dukascopy_files", cls.save_compressed_dukascopy_files)
            ),
            save_raw_dukascopy_files=bool(block.get("save_raw_dukascopy_files", cls.save_raw_dukascopy_files)),
            save_raw_tick_files=bool(block.get("save_raw_tick_files", cls.save_raw_tick_files)),
            save_compressed_tick_files=bool(block.get("save_compressed_tick_files", cls.save_compressed_tick_files)),
            verbose=int(block.get("verbose", cls.verbose)),
        )

    def with_overrides(self, **changes: Any) -> "UpdateConfig":
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update({key: value for key, value in changes.items() if value is not None})
        return UpdateConfig(**values)


def default_config_path() -> Path:
    override = os.environ.get("TICKDATA_CONFIG")
    if override:
        return Path(override).expanduser()
    return get_repo_root() / "configs" / "tickdata.yml"


def load_config_mapping(path: Path | str) -> Mapping[str, Any]:
    config_path = Path(path)
    text = config_path.read_text(encoding="utf-8")
    if config_path.suffix.lower() in {".yml", ".yaml"}:
        payload = yaml.safe_load(text)
    else:
        payload = json.loads(text)
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ArgumentError("Tick data config must map keys to values.")
    return payload


def load_update_config(path: Path | str | None = None, *, data_root: Path | str | None = None) -> UpdateConfig:
    """Load update configuration from disk."""

    config_path = Path(path) if path else default_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Tick data configuration not found at {config_path}")
    return UpdateConfig.from_mapping(load_config_mapping(config_path), data_root=data_root)


__all__ = [
    "DEFAULT_USER_AGENT",
    "UpdateConfig",
    "default_config_path",
    "load_config_mapping",
    "load_update_config",
]
