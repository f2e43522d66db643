from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar, Dict, List, Union


class InventoryError(Exception):
    """Base class for ledger errors.

    ``status_code`` is the HTTP-equivalent a collaborator should surface;
    every ledger error aborts its batch but the caller may retry with
    corrected input.
    """

    code: ClassVar[str] = "inventory_error"
    status_code: ClassVar[int] = 400

    @property
    def message(self) -> str:
        return self.code

    def __str__(self) -> str:
        return self.message


@dataclass
class InsufficientStock(InventoryError):
    item_name: str
    available: Decimal
    requested: Decimal

    code: ClassVar[str] = "insufficient_stock"
    status_code: ClassVar[int] = 422

    @property
    def message(self) -> str:
        return (
            f"Insufficient stock for item '{self.item_name}'. "
            f"Available: {self.available:.2f}, Requested: {self.requested:.2f}"
        )


@dataclass
class ItemNotFound(InventoryError):
    identifier: Union[int, str]

    code: ClassVar[str] = "item_not_found"
    status_code: ClassVar[int] = 404

    @property
    def message(self) -> str:
        return f"Item with identifier '{self.identifier}' not found."


@dataclass
class InvalidQuantity(InventoryError):
    quantity: object

    code: ClassVar[str] = "invalid_quantity"
    status_code: ClassVar[int] = 422

    @property
    def message(self) -> str:
        return f"Ledger quantity must be greater than zero, got {self.quantity}."


@dataclass
class DuplicateName(InventoryError):
    name: str

    code: ClassVar[str] = "duplicate_name"
    status_code: ClassVar[int] = 409

    @property
    def message(self) -> str:
        return f"An item named '{self.name}' already exists."


@dataclass
class InvalidItemData(InventoryError):
    detail: List[Dict[str, str]] = field(default_factory=list)

    code: ClassVar[str] = "invalid_item_data"
    status_code: ClassVar[int] = 422

    @property
    def message(self) -> str:
        reasons = "; ".join(f"{entry['field']}: {entry['reason']}" for entry in self.detail)
        return f"Invalid item data ({reasons})."
