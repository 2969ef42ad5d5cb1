"""Money / rounding helpers.

Pricing runs on Decimal end to end; round2 is applied once when an amount
leaves the service layer (response models, persisted snapshots).
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, float, int, str]

CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps float inputs like 85.1 from expanding to binary noise
    return Decimal(str(value))


def quantize2(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round2(value: Number) -> float:
    return float(quantize2(value))
