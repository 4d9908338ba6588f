from __future__ import annotations

from typing import Iterable


class HeirloomError(Exception):
    """Base class for errors raised by the application itself."""


class ConversionError(HeirloomError, ValueError):
    """Raised when a quantity cannot be converted between two units."""


class UnknownUnitError(ConversionError):
    def __init__(self, unit: str) -> None:
        super().__init__(f"Unknown unit '{unit}'.")
        self.unit = unit


class DimensionMismatchError(ConversionError):
    def __init__(self, from_unit: str, to_unit: str) -> None:
        super().__init__("Cannot convert between weight and volume units")
        self.from_unit = from_unit
        self.to_unit = to_unit


class ValidationError(HeirloomError):
    """Raised when a record is missing fields the backend requires."""

    def __init__(self, missing: Iterable[str]) -> None:
        self.missing = list(missing)
        super().__init__("Missing required fields: " + ", ".join(self.missing))


__all__ = [
    "ConversionError",
    "DimensionMismatchError",
    "HeirloomError",
    "UnknownUnitError",
    "ValidationError",
]
