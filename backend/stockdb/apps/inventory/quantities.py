"""Two-decimal quantity arithmetic shared by the stores and the ledger."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

QuantityLike = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_quantity(value: QuantityLike) -> Decimal:
    """Normalise a quantity to a Decimal with two decimal places.

    Floats go through ``str`` so ``9.99`` stays ``9.99`` instead of the
    nearest binary fraction.
    """
    if isinstance(value, bool):
        raise ValueError("quantity must be numeric")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"quantity must be numeric, got {value!r}") from exc
