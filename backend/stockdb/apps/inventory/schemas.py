from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import models
from .quantities import to_quantity
from .stock_status import StockStatus, classify, parse_status

ALLOWED_SORT_FIELDS = ("name", "quantity", "created_at", "updated_at")
DEFAULT_SORT_FIELD = "name"
SORT_DIRECTIONS = ("asc", "desc")


class ItemRead(BaseModel):
    """Immutable snapshot of an item as last persisted."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    unit: models.UnitEnum
    quantity: Decimal
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def _two_decimals(cls, value):
        return to_quantity(value)

    @property
    def status(self) -> StockStatus:
        return classify(self.quantity)

    def can_deduct(self, quantity: Decimal) -> bool:
        return self.quantity >= quantity


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    item_id: int
    type: models.TransactionTypeEnum
    quantity: Decimal
    note: Optional[str] = None
    created_at: datetime

    @field_validator("quantity", mode="before")
    @classmethod
    def _two_decimals(cls, value):
        return to_quantity(value)

    @property
    def signed_quantity(self) -> Decimal:
        if self.type == models.TransactionTypeEnum.ADD:
            return self.quantity
        return -self.quantity


class TransactionWithItem(TransactionRead):
    item: ItemRead


class AddEntry(BaseModel):
    """One line of an add batch. Positivity of ``quantity`` is enforced by the engine."""

    name: str = Field(..., min_length=1, max_length=models.NAME_MAX_LENGTH)
    unit: models.UnitEnum
    quantity: Decimal
    note: Optional[str] = Field(None, max_length=models.NOTE_MAX_LENGTH)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class DeductEntry(BaseModel):
    item_id: int
    quantity: Decimal
    note: Optional[str] = Field(None, max_length=models.NOTE_MAX_LENGTH)


class ItemUpdate(BaseModel):
    """Direct edit of an item; unset fields are left alone."""

    name: Optional[str] = Field(None, min_length=1, max_length=models.NAME_MAX_LENGTH)
    unit: Optional[models.UnitEnum] = None
    quantity: Optional[Decimal] = None
    note: Optional[str] = Field(None, max_length=models.NOTE_MAX_LENGTH)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value):
        return value.strip() if isinstance(value, str) else value


class ItemFilters(BaseModel):
    """Listing filters; unsafe or unknown values fall back instead of failing."""

    search: Optional[str] = None
    unit: Optional[str] = None
    status: Optional[StockStatus] = None
    sort: str = DEFAULT_SORT_FIELD
    direction: str = "asc"

    @field_validator("search", "unit", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("status", mode="before")
    @classmethod
    def _known_status(cls, value):
        return parse_status(value)

    @field_validator("sort", mode="before")
    @classmethod
    def _allowed_sort(cls, value):
        return value if value in ALLOWED_SORT_FIELDS else DEFAULT_SORT_FIELD

    @field_validator("direction", mode="before")
    @classmethod
    def _allowed_direction(cls, value):
        return "desc" if str(value or "").strip().lower() == "desc" else "asc"

    @property
    def descending(self) -> bool:
        return self.direction == "desc"


class DashboardStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_items: int
    total_quantity: Decimal
    low_stock_count: int
    out_of_stock_count: int
    recent_transactions: List[TransactionWithItem] = Field(default_factory=list)


class ItemLedgerSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: ItemRead
    total_added: Decimal
    total_deducted: Decimal

    @property
    def ledger_balance(self) -> Decimal:
        return self.total_added - self.total_deducted

    @property
    def is_consistent(self) -> bool:
        return self.ledger_balance == self.item.quantity
