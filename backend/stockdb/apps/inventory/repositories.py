"""Item store and transaction log.

The abstract classes are the narrow capabilities the ledger engine and the
reports depend on; the SQLAlchemy classes implement them on one session
owned by a unit of work. Every method returns immutable snapshots from
``schemas`` rather than live ORM objects.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import sqlalchemy as sa
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import DuplicateName, InvalidItemData, InvalidQuantity, ItemNotFound
from .quantities import ZERO, QuantityLike, to_quantity
from .stock_status import LOW_STOCK_THRESHOLD, StockStatus

EDITABLE_FIELDS = ("name", "unit", "quantity")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so a search term only ever matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_item_fields(
    *,
    name: Optional[str] = None,
    unit: Union[models.UnitEnum, str, None] = None,
    quantity: Optional[QuantityLike] = None,
    partial: bool = False,
) -> Dict[str, Any]:
    """Validate item attributes shared by every store implementation."""
    problems: List[Dict[str, str]] = []
    values: Dict[str, Any] = {}

    if name is not None or not partial:
        cleaned = (name or "").strip()
        if not cleaned:
            problems.append({"field": "name", "reason": "name is required"})
        elif len(cleaned) > models.NAME_MAX_LENGTH:
            problems.append({"field": "name", "reason": f"at most {models.NAME_MAX_LENGTH} characters"})
        else:
            values["name"] = cleaned

    if unit is not None or not partial:
        try:
            values["unit"] = models.UnitEnum(unit)
        except ValueError:
            allowed = ", ".join(member.value for member in models.UnitEnum)
            problems.append({"field": "unit", "reason": f"must be one of: {allowed}"})

    if quantity is not None or not partial:
        try:
            amount = to_quantity(quantity if quantity is not None else ZERO)
        except ValueError:
            problems.append({"field": "quantity", "reason": "must be numeric"})
        else:
            if amount < 0:
                problems.append({"field": "quantity", "reason": "cannot be negative"})
            else:
                values["quantity"] = amount

    if problems:
        raise InvalidItemData(detail=problems)
    return values


def validate_ledger_entry(quantity: QuantityLike, note: Optional[str]) -> Decimal:
    try:
        amount = to_quantity(quantity)
    except ValueError:
        raise InvalidQuantity(quantity) from None
    if amount <= 0:
        raise InvalidQuantity(quantity)
    if note is not None and len(note) > models.NOTE_MAX_LENGTH:
        raise InvalidItemData(
            detail=[{"field": "note", "reason": f"at most {models.NOTE_MAX_LENGTH} characters"}]
        )
    return amount


class ItemStore(ABC):

    @abstractmethod
    def find_by_id(self, item_id: int, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        """Return the item with this id, or None."""

    @abstractmethod
    def find_by_name(self, name: str, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        """Return the item whose name matches exactly, or None."""

    @abstractmethod
    def create(self, name: str, unit: Union[models.UnitEnum, str], quantity: QuantityLike) -> schemas.ItemRead:
        """Persist a new item; raises DuplicateName if the name is taken."""

    @abstractmethod
    def update(self, item: schemas.ItemRead, changes: Mapping[str, Any]) -> schemas.ItemRead:
        """Apply ``changes`` and return the re-read item."""

    @abstractmethod
    def change_quantity(self, item: schemas.ItemRead, delta: Decimal) -> Optional[schemas.ItemRead]:
        """Add ``delta`` unless the result would go negative; None when refused."""

    @abstractmethod
    def delete(self, item: schemas.ItemRead) -> bool:
        """Delete the item together with its transactions."""

    @abstractmethod
    def list(self, filters: Optional[schemas.ItemFilters] = None) -> List[schemas.ItemRead]:
        """Filtered, sorted enumeration."""

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def total_quantity(self) -> Decimal:
        ...

    @abstractmethod
    def count_by_status(self, status: StockStatus) -> int:
        ...

    @abstractmethod
    def unique_units(self) -> List[models.UnitEnum]:
        ...


class TransactionLog(ABC):

    @abstractmethod
    def append(
        self,
        item_id: int,
        type: models.TransactionTypeEnum,
        quantity: QuantityLike,
        note: Optional[str] = None,
    ) -> schemas.TransactionRead:
        """Record one ledger entry against an existing item."""

    @abstractmethod
    def history_for(self, item_id: int) -> List[schemas.TransactionRead]:
        """Entries for one item, newest first."""

    @abstractmethod
    def recent(self, limit: int) -> List[schemas.TransactionRead]:
        """Newest entries across all items."""

    @abstractmethod
    def totals_for(self, item_id: int) -> Tuple[Decimal, Decimal]:
        """(total added, total deducted) for one item."""

    @abstractmethod
    def delete_for_item(self, item_id: int) -> int:
        """Remove an item's entries; only item deletion may call this."""


def _status_clause(status: StockStatus):
    if status == StockStatus.OUT_OF_STOCK:
        return models.Item.quantity <= 0
    if status == StockStatus.LOW_STOCK:
        return sa.and_(models.Item.quantity > 0, models.Item.quantity < LOW_STOCK_THRESHOLD)
    return models.Item.quantity >= LOW_STOCK_THRESHOLD


def _is_name_conflict(exc: IntegrityError) -> bool:
    text = str(exc.orig).lower()
    return "uq_items_name" in text or "items.name" in text or "unique" in text


class SqlItemStore(ItemStore):
    def __init__(self, db: Session):
        self.db = db

    def _query(self, *, for_update: bool = False):
        query = self.db.query(models.Item)
        if for_update:
            query = query.with_for_update()
        return query

    def _snapshot(self, item: Optional[models.Item]) -> Optional[schemas.ItemRead]:
        if item is None:
            return None
        return schemas.ItemRead.model_validate(item)

    def _reload(self, item_id: int) -> models.Item:
        return (
            self.db.query(models.Item)
            .filter(models.Item.id == item_id)
            .populate_existing()
            .one()
        )

    def _flush_or_duplicate(self, name: str) -> None:
        try:
            self.db.flush()
        except IntegrityError as exc:
            if _is_name_conflict(exc):
                raise DuplicateName(name) from exc
            raise

    def find_by_id(self, item_id: int, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        item = self._query(for_update=for_update).filter(models.Item.id == item_id).populate_existing().first()
        return self._snapshot(item)

    def find_by_name(self, name: str, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        item = (
            self._query(for_update=for_update)
            .filter(models.Item.name == (name or "").strip())
            .populate_existing()
            .first()
        )
        return self._snapshot(item)

    def create(self, name: str, unit: Union[models.UnitEnum, str], quantity: QuantityLike) -> schemas.ItemRead:
        values = normalize_item_fields(name=name, unit=unit, quantity=quantity)
        if self.find_by_name(values["name"]) is not None:
            raise DuplicateName(values["name"])
        now = _utcnow()
        item = models.Item(created_at=now, updated_at=now, **values)
        # Savepoint: a lost unique-name race leaves the outer transaction usable.
        try:
            with self.db.begin_nested():
                self.db.add(item)
                self.db.flush()
        except IntegrityError as exc:
            if _is_name_conflict(exc):
                raise DuplicateName(values["name"]) from exc
            raise
        return self._snapshot(self._reload(item.id))

    def update(self, item: schemas.ItemRead, changes: Mapping[str, Any]) -> schemas.ItemRead:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidItemData(
                detail=[{"field": field, "reason": "not editable"} for field in sorted(unknown)]
            )
        values = normalize_item_fields(partial=True, **dict(changes))
        row = self.db.query(models.Item).filter(models.Item.id == item.id).populate_existing().first()
        if row is None:
            raise ItemNotFound(item.id)
        if "name" in values and values["name"] != row.name:
            clash = self.find_by_name(values["name"])
            if clash is not None and clash.id != item.id:
                raise DuplicateName(values["name"])
        if not values:
            return self._snapshot(row)
        for field, value in values.items():
            setattr(row, field, value)
        row.updated_at = _utcnow()
        self._flush_or_duplicate(values.get("name", row.name))
        return self._snapshot(self._reload(item.id))

    def change_quantity(self, item: schemas.ItemRead, delta: Decimal) -> Optional[schemas.ItemRead]:
        delta = to_quantity(delta)
        result = self.db.execute(
            sa.update(models.Item)
            .where(models.Item.id == item.id, func.round(models.Item.quantity + delta, 2) >= 0)
            .values(quantity=func.round(models.Item.quantity + delta, 2), updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self._snapshot(self._reload(item.id))

    def delete(self, item: schemas.ItemRead) -> bool:
        row = self.db.query(models.Item).filter(models.Item.id == item.id).populate_existing().first()
        if row is None:
            return False
        SqlTransactionLog(self.db).delete_for_item(item.id)
        self.db.expire(row, ["transactions"])
        self.db.delete(row)
        self.db.flush()
        return True

    def list(self, filters: Optional[schemas.ItemFilters] = None) -> List[schemas.ItemRead]:
        filters = filters or schemas.ItemFilters()
        query = self.db.query(models.Item)

        if filters.search:
            query = query.filter(models.Item.name.ilike(f"%{escape_like(filters.search)}%", escape="\\"))

        if filters.unit:
            query = query.filter(models.Item.unit == filters.unit)

        if filters.status is not None:
            query = query.filter(_status_clause(filters.status))

        column = getattr(models.Item, filters.sort)
        if filters.descending:
            query = query.order_by(column.desc(), models.Item.id.desc())
        else:
            query = query.order_by(column.asc(), models.Item.id.asc())

        return [self._snapshot(item) for item in query.all()]

    def count(self) -> int:
        return self.db.query(func.count(models.Item.id)).scalar() or 0

    def total_quantity(self) -> Decimal:
        total = self.db.query(func.sum(models.Item.quantity)).scalar()
        return to_quantity(total if total is not None else ZERO)

    def count_by_status(self, status: StockStatus) -> int:
        return self.db.query(func.count(models.Item.id)).filter(_status_clause(status)).scalar() or 0

    def unique_units(self) -> List[models.UnitEnum]:
        rows = self.db.query(models.Item.unit).distinct().all()
        return sorted((models.UnitEnum(row[0]) for row in rows), key=lambda unit: unit.value)


class SqlTransactionLog(TransactionLog):
    def __init__(self, db: Session):
        self.db = db

    def _newest_first(self, query):
        return query.order_by(
            models.InventoryTransaction.created_at.desc(),
            models.InventoryTransaction.id.desc(),
        )

    def append(
        self,
        item_id: int,
        type: models.TransactionTypeEnum,
        quantity: QuantityLike,
        note: Optional[str] = None,
    ) -> schemas.TransactionRead:
        amount = validate_ledger_entry(quantity, note)
        exists = self.db.query(models.Item.id).filter(models.Item.id == item_id).first()
        if exists is None:
            raise ItemNotFound(item_id)
        entry = models.InventoryTransaction(
            item_id=item_id,
            type=models.TransactionTypeEnum(type),
            quantity=amount,
            note=note,
            created_at=_utcnow(),
        )
        self.db.add(entry)
        self.db.flush()
        return schemas.TransactionRead.model_validate(entry)

    def history_for(self, item_id: int) -> List[schemas.TransactionRead]:
        query = self.db.query(models.InventoryTransaction).filter(models.InventoryTransaction.item_id == item_id)
        return [schemas.TransactionRead.model_validate(entry) for entry in self._newest_first(query).all()]

    def recent(self, limit: int) -> List[schemas.TransactionRead]:
        if limit <= 0:
            return []
        query = self._newest_first(self.db.query(models.InventoryTransaction)).limit(limit)
        return [schemas.TransactionRead.model_validate(entry) for entry in query.all()]

    def totals_for(self, item_id: int) -> Tuple[Decimal, Decimal]:
        rows = (
            self.db.query(models.InventoryTransaction.type, func.sum(models.InventoryTransaction.quantity))
            .filter(models.InventoryTransaction.item_id == item_id)
            .group_by(models.InventoryTransaction.type)
            .all()
        )
        totals = {models.TransactionTypeEnum(entry_type): to_quantity(total or ZERO) for entry_type, total in rows}
        return (
            totals.get(models.TransactionTypeEnum.ADD, ZERO),
            totals.get(models.TransactionTypeEnum.DEDUCT, ZERO),
        )

    def delete_for_item(self, item_id: int) -> int:
        removed = (
            self.db.query(models.InventoryTransaction)
            .filter(models.InventoryTransaction.item_id == item_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return removed
