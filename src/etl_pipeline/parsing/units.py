"""Unit normalizations, applied to an already coerced value."""
from __future__ import annotations

from typing import Callable

_KELVIN_OFFSET = 273.15


def kelvin_to_celsius(k: float) -> float:
    return k - _KELVIN_OFFSET


def kelvin_to_fahrenheit(k: float) -> float:
    return k * 9 / 5 - 459.67


def fahrenheit_to_celsius(f: float) -> float:
    return (f - 32) * 5 / 9


def scale(factor: float) -> Callable[[float], float]:
    """Multiply by `factor`, ex: `scale(3.6)` turns m/s into km/h."""
    def _scale(v: float) -> float:
        return v * factor
    _scale.__name__ = f"scale_{factor:g}"
    return _scale
