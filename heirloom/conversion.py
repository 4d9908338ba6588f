"""Kitchen unit conversion.

Every unit belongs to one dimension and carries its size in that dimension's
base measure: grams for weight, millilitres for volume. Converting within a
dimension goes through the base measure. Weight and volume are never
interconvertible since that would need a density for the ingredient.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Literal

from .errors import DimensionMismatchError, UnknownUnitError

Dimension = Literal["weight", "volume"]


@dataclass(frozen=True)
class Unit:
    dimension: Dimension
    factor: float


# Base units: grams (weight), ml (volume)
UNITS: Dict[str, Unit] = {
    "cup": Unit("volume", 236.588),
    "tbsp": Unit("volume", 14.7868),
    "tsp": Unit("volume", 4.92892),
    "ml": Unit("volume", 1.0),
    "fl oz": Unit("volume", 29.5735),
    "liter": Unit("volume", 1000.0),
    "oz": Unit("weight", 28.3495),
    "lb": Unit("weight", 453.592),
    "grams": Unit("weight", 1.0),
    "kg": Unit("weight", 1000.0),
}


@dataclass(frozen=True)
class Preset:
    amount: float
    from_unit: str
    to_unit: str
    label: str


COMMON_CONVERSIONS: List[Preset] = [
    Preset(1, "cup", "ml", "1 cup = 236.6 ml"),
    Preset(1, "tbsp", "ml", "1 tbsp = 14.8 ml"),
    Preset(1, "tsp", "ml", "1 tsp = 4.9 ml"),
    Preset(1, "oz", "grams", "1 oz = 28.35 g"),
    Preset(1, "lb", "grams", "1 lb = 453.6 g"),
    Preset(1, "cup", "fl oz", "1 cup = 8 fl oz"),
]


def get_unit(name: str) -> Unit:
    try:
        return UNITS[name]
    except KeyError:
        raise UnknownUnitError(name) from None


def units_for(dimension: Dimension) -> List[str]:
    return [name for name, unit in UNITS.items() if unit.dimension == dimension]


def convert(amount: float, from_unit: str, to_unit: str) -> float:
    """Convert ``amount`` of ``from_unit`` into ``to_unit``.

    Raises :class:`UnknownUnitError` for a unit outside :data:`UNITS` and
    :class:`DimensionMismatchError` when one unit measures weight and the
    other volume. The result is returned at full precision; use
    :func:`format_amount` for display.
    """

    if not math.isfinite(amount) or amount < 0:
        raise ValueError("Amount must be a finite number greater than or equal to zero.")

    source = get_unit(from_unit)
    target = get_unit(to_unit)

    if source.dimension != target.dimension:
        raise DimensionMismatchError(from_unit, to_unit)

    return amount * source.factor / target.factor


def format_amount(value: float) -> str:
    return f"{value:.2f}"


__all__ = [
    "COMMON_CONVERSIONS",
    "UNITS",
    "Preset",
    "Unit",
    "convert",
    "format_amount",
    "get_unit",
    "units_for",
]
