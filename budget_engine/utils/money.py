"""Rounding helpers for monetary figures"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal


def coerce_decimal(value) -> Decimal:
    """Normalize numeric values to Decimal (None becomes zero)"""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def round_half_up(value: float, places: int = 2) -> float:
    """Round to `places` decimals with halves going up (0.5 -> 1, 2.345 -> 2.35)"""
    return float(coerce_decimal(value).quantize(_quantum(places), rounding=ROUND_HALF_UP))


def ceil_to(value, places: int = 2) -> float:
    """Round up to `places` decimals (33.3333 -> 33.34)"""
    return float(coerce_decimal(value).quantize(_quantum(places), rounding=ROUND_CEILING))
