"""In-memory item store, transaction log and unit of work.

Drop-in replacements for the SQLAlchemy implementations, used by tests and
by tooling that has no database at hand. A single re-entrant lock per
``InMemoryDatabase`` is held for the whole unit of work, so batches run one
at a time.
"""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from . import models, schemas
from .errors import DuplicateName, InvalidItemData, ItemNotFound
from .quantities import ZERO, QuantityLike, to_quantity
from .repositories import (
    EDITABLE_FIELDS,
    ItemStore,
    TransactionLog,
    normalize_item_fields,
    validate_ledger_entry,
)
from .stock_status import StockStatus, classify
from .unit_of_work import AbstractUnitOfWork


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDatabase:
    """Committed state shared by every unit of work opened on it."""

    def __init__(self) -> None:
        self.items: Dict[int, schemas.ItemRead] = {}
        self.transactions: Dict[int, schemas.TransactionRead] = {}
        self.lock = threading.RLock()
        self._item_ids = itertools.count(1)
        self._transaction_ids = itertools.count(1)

    def next_item_id(self) -> int:
        return next(self._item_ids)

    def next_transaction_id(self) -> int:
        return next(self._transaction_ids)


class InMemoryItemStore(ItemStore):
    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def find_by_id(self, item_id: int, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        return self.database.items.get(item_id)

    def find_by_name(self, name: str, *, for_update: bool = False) -> Optional[schemas.ItemRead]:
        name = (name or "").strip()
        for item in self.database.items.values():
            if item.name == name:
                return item
        return None

    def create(self, name: str, unit: Union[models.UnitEnum, str], quantity: QuantityLike) -> schemas.ItemRead:
        values = normalize_item_fields(name=name, unit=unit, quantity=quantity)
        if self.find_by_name(values["name"]) is not None:
            raise DuplicateName(values["name"])
        now = _utcnow()
        item = schemas.ItemRead(
            id=self.database.next_item_id(),
            created_at=now,
            updated_at=now,
            **values,
        )
        self.database.items[item.id] = item
        return item

    def update(self, item: schemas.ItemRead, changes: Mapping[str, Any]) -> schemas.ItemRead:
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidItemData(
                detail=[{"field": field, "reason": "not editable"} for field in sorted(unknown)]
            )
        values = normalize_item_fields(partial=True, **dict(changes))
        current = self.database.items.get(item.id)
        if current is None:
            raise ItemNotFound(item.id)
        if "name" in values:
            clash = self.find_by_name(values["name"])
            if clash is not None and clash.id != item.id:
                raise DuplicateName(values["name"])
        if not values:
            return current
        updated = current.model_copy(update={**values, "updated_at": _utcnow()})
        self.database.items[item.id] = updated
        return updated

    def change_quantity(self, item: schemas.ItemRead, delta: Decimal) -> Optional[schemas.ItemRead]:
        current = self.database.items.get(item.id)
        if current is None:
            return None
        quantity = current.quantity + to_quantity(delta)
        if quantity < 0:
            return None
        updated = current.model_copy(update={"quantity": quantity, "updated_at": _utcnow()})
        self.database.items[item.id] = updated
        return updated

    def delete(self, item: schemas.ItemRead) -> bool:
        if item.id not in self.database.items:
            return False
        InMemoryTransactionLog(self.database).delete_for_item(item.id)
        del self.database.items[item.id]
        return True

    def list(self, filters: Optional[schemas.ItemFilters] = None) -> List[schemas.ItemRead]:
        filters = filters or schemas.ItemFilters()
        items = list(self.database.items.values())
        if filters.search:
            needle = filters.search.casefold()
            items = [item for item in items if needle in item.name.casefold()]
        if filters.unit:
            items = [item for item in items if item.unit.value == filters.unit]
        if filters.status is not None:
            items = [item for item in items if item.status == filters.status]
        return sorted(
            items,
            key=lambda item: (getattr(item, filters.sort), item.id),
            reverse=filters.descending,
        )

    def count(self) -> int:
        return len(self.database.items)

    def total_quantity(self) -> Decimal:
        return to_quantity(sum((item.quantity for item in self.database.items.values()), ZERO))

    def count_by_status(self, status: StockStatus) -> int:
        return sum(1 for item in self.database.items.values() if classify(item.quantity) == status)

    def unique_units(self) -> List[models.UnitEnum]:
        units = {item.unit for item in self.database.items.values()}
        return sorted(units, key=lambda unit: unit.value)


class InMemoryTransactionLog(TransactionLog):
    def __init__(self, database: InMemoryDatabase):
        self.database = database

    def _newest_first(self, entries) -> List[schemas.TransactionRead]:
        return sorted(entries, key=lambda entry: (entry.created_at, entry.id), reverse=True)

    def append(
        self,
        item_id: int,
        type: models.TransactionTypeEnum,
        quantity: QuantityLike,
        note: Optional[str] = None,
    ) -> schemas.TransactionRead:
        amount = validate_ledger_entry(quantity, note)
        if item_id not in self.database.items:
            raise ItemNotFound(item_id)
        entry = schemas.TransactionRead(
            id=self.database.next_transaction_id(),
            item_id=item_id,
            type=models.TransactionTypeEnum(type),
            quantity=amount,
            note=note,
            created_at=_utcnow(),
        )
        self.database.transactions[entry.id] = entry
        return entry

    def history_for(self, item_id: int) -> List[schemas.TransactionRead]:
        return self._newest_first(
            entry for entry in self.database.transactions.values() if entry.item_id == item_id
        )

    def recent(self, limit: int) -> List[schemas.TransactionRead]:
        if limit <= 0:
            return []
        return self._newest_first(self.database.transactions.values())[:limit]

    def totals_for(self, item_id: int) -> Tuple[Decimal, Decimal]:
        added = deducted = ZERO
        for entry in self.database.transactions.values():
            if entry.item_id != item_id:
                continue
            if entry.type == models.TransactionTypeEnum.ADD:
                added += entry.quantity
            else:
                deducted += entry.quantity
        return added, deducted

    def delete_for_item(self, item_id: int) -> int:
        doomed = [entry_id for entry_id, entry in self.database.transactions.items() if entry.item_id == item_id]
        for entry_id in doomed:
            del self.database.transactions[entry_id]
        return len(doomed)


class InMemoryUnitOfWork(AbstractUnitOfWork):
    def __init__(self, database: InMemoryDatabase):
        super().__init__()
        self.database = database
        self._snapshot: Optional[Tuple[dict, dict]] = None

    def _begin(self) -> None:
        self.database.lock.acquire()
        self._snapshot = (dict(self.database.items), dict(self.database.transactions))
        self.items = InMemoryItemStore(self.database)
        self.transactions = InMemoryTransactionLog(self.database)

    def _commit(self) -> None:
        self._snapshot = (dict(self.database.items), dict(self.database.transactions))

    def _rollback(self) -> None:
        if self._snapshot is None:
            return
        items, transactions = self._snapshot
        self.database.items.clear()
        self.database.items.update(items)
        self.database.transactions.clear()
        self.database.transactions.update(transactions)

    def _close(self) -> None:
        self._snapshot = None
        self.database.lock.release()
