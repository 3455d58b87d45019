"""Public validation API."""

from .ticks import validate_hour_ticks

__all__ = ["validate_hour_ticks"]
