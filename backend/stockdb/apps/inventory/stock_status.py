from __future__ import annotations

import enum
from decimal import Decimal
from typing import Union

LOW_STOCK_THRESHOLD = 10


class StockStatus(str, enum.Enum):
    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    IN_STOCK = "in_stock"


def classify(quantity: Union[Decimal, int, float]) -> StockStatus:
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if quantity < LOW_STOCK_THRESHOLD:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def parse_status(value: object) -> StockStatus | None:
    """Return the matching status, or None for blank/unknown input."""
    if isinstance(value, StockStatus):
        return value
    if not value:
        return None
    try:
        return StockStatus(str(value).strip().lower())
    except ValueError:
        return None
