from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from . import models, schemas
from .errors import DuplicateName, InsufficientStock, InvalidItemData, InvalidQuantity, ItemNotFound
from .quantities import QuantityLike, to_quantity
from .repositories import validate_ledger_entry
from .unit_of_work import AbstractUnitOfWork, SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)

DEFAULT_ADJUSTMENT_NOTE = "Manual adjustment"
DEFAULT_EDIT_NOTE = "Manual quantity adjustment"
DEFAULT_INITIAL_NOTE = "Initial stock"

EntryT = TypeVar("EntryT", bound=BaseModel)
LogEvent = Tuple[str, Dict[str, Any]]
ItemRef = Union[schemas.ItemRead, int]


def _coerce(model: Type[EntryT], entry: Union[EntryT, Mapping[str, Any]]) -> EntryT:
    if isinstance(entry, model):
        return entry
    try:
        return model.model_validate(entry)
    except ValidationError as exc:
        detail = [
            {"field": ".".join(str(part) for part in error["loc"]) or "entry", "reason": error["msg"]}
            for error in exc.errors()
        ]
        raise InvalidItemData(detail=detail) from None


def _event(message: str, item: schemas.ItemRead, delta: Decimal) -> LogEvent:
    return (
        message,
        {
            "item_id": item.id,
            "item_name": item.name,
            "quantity_delta": delta,
            "resulting_quantity": item.quantity,
        },
    )


def _item_id(item: ItemRef) -> int:
    return item.id if isinstance(item, schemas.ItemRead) else int(item)


def _non_negative(value: QuantityLike) -> Decimal:
    try:
        amount = to_quantity(value)
    except ValueError:
        raise InvalidQuantity(value) from None
    if amount < 0:
        raise InvalidQuantity(value)
    return amount


def _adjustment_entry(old: Decimal, new: Decimal) -> Optional[Tuple[models.TransactionTypeEnum, Decimal]]:
    """Ledger entry that moves ``old`` to ``new``; None when they are equal."""
    difference = abs(new - old)
    if difference == 0:
        return None
    if new > old:
        return models.TransactionTypeEnum.ADD, difference
    return models.TransactionTypeEnum.DEDUCT, difference


class LedgerEngine:
    """
    Single write path for item quantities.

    Every public method runs in one unit of work: either all item changes
    and their ledger entries are committed, or none are. Log records are
    emitted only after the commit succeeds.
    """

    def __init__(self, uow_factory: Callable[[], AbstractUnitOfWork] = SqlAlchemyUnitOfWork):
        self.uow_factory = uow_factory

    def _emit(self, events: Iterable[LogEvent]) -> None:
        for message, extra in events:
            logger.info(message, extra=extra)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def add_batch(self, entries: Iterable[Union[schemas.AddEntry, Mapping[str, Any]]]) -> List[schemas.ItemRead]:
        """
        Add stock for each entry in order.

        An existing item (matched by exact name) is incremented and keeps
        its unit; an unknown name creates the item. Repeated names within
        one batch accumulate onto the same item.
        """
        batch = [_coerce(schemas.AddEntry, entry) for entry in entries]
        if not batch:
            return []
        amounts = [validate_ledger_entry(entry.quantity, entry.note) for entry in batch]

        results: List[schemas.ItemRead] = []
        events: List[LogEvent] = []
        with self.uow_factory() as uow:
            for entry, amount in zip(batch, amounts):
                item = self._add_to_item(uow, entry, amount)
                uow.transactions.append(item.id, models.TransactionTypeEnum.ADD, amount, entry.note)
                results.append(item)
                events.append(_event("Inventory added", item, amount))

        self._emit(events)
        return results

    def _add_to_item(self, uow: AbstractUnitOfWork, entry: schemas.AddEntry, amount: Decimal) -> schemas.ItemRead:
        item = uow.items.find_by_name(entry.name, for_update=True)
        if item is None:
            try:
                return uow.items.create(entry.name, entry.unit, amount)
            except DuplicateName:
                # Created by a concurrent batch since the lookup; add to it instead.
                item = uow.items.find_by_name(entry.name, for_update=True)
                if item is None:
                    raise
        updated = uow.items.change_quantity(item, amount)
        if updated is None:
            raise ItemNotFound(entry.name)
        return updated

    def deduct_batch(
        self, entries: Iterable[Union[schemas.DeductEntry, Mapping[str, Any]]]
    ) -> List[schemas.ItemRead]:
        """
        Deduct stock for each entry in order.

        Fails the whole batch with ItemNotFound or InsufficientStock; nothing
        from earlier entries is kept.
        """
        batch = [_coerce(schemas.DeductEntry, entry) for entry in entries]
        if not batch:
            return []
        amounts = [validate_ledger_entry(entry.quantity, entry.note) for entry in batch]

        results: List[schemas.ItemRead] = []
        events: List[LogEvent] = []
        with self.uow_factory() as uow:
            # Lock every touched row up front, lowest id first.
            for item_id in sorted({entry.item_id for entry in batch}):
                uow.items.find_by_id(item_id, for_update=True)

            for entry, amount in zip(batch, amounts):
                item = uow.items.find_by_id(entry.item_id)
                if item is None:
                    raise ItemNotFound(entry.item_id)
                if not item.can_deduct(amount):
                    raise InsufficientStock(item.name, item.quantity, amount)
                updated = uow.items.change_quantity(item, -amount)
                if updated is None:
                    # Guarded write lost a race the row lock should have prevented.
                    current = uow.items.find_by_id(entry.item_id)
                    if current is None:
                        raise ItemNotFound(entry.item_id)
                    raise InsufficientStock(item.name, current.quantity, amount)
                uow.transactions.append(updated.id, models.TransactionTypeEnum.DEDUCT, amount, entry.note)
                results.append(updated)
                events.append(_event("Inventory deducted", updated, -amount))

        self._emit(events)
        return results

    # ------------------------------------------------------------------
    # Direct edits
    # ------------------------------------------------------------------

    def adjust(
        self,
        item: ItemRef,
        old_quantity: QuantityLike,
        new_quantity: QuantityLike,
        note: Optional[str] = DEFAULT_ADJUSTMENT_NOTE,
    ) -> Optional[schemas.TransactionRead]:
        """
        Record the ledger entry for a quantity the caller already changed.

        Does not touch ``item.quantity``. Returns the new transaction, or
        None when old and new quantities are equal.
        """
        item_id = _item_id(item)
        old = _non_negative(old_quantity)
        new = _non_negative(new_quantity)

        events: List[LogEvent] = []
        with self.uow_factory() as uow:
            current = uow.items.find_by_id(item_id, for_update=True)
            if current is None:
                raise ItemNotFound(item_id)
            adjustment = _adjustment_entry(old, new)
            if adjustment is None:
                return None
            entry_type, difference = adjustment
            transaction = uow.transactions.append(item_id, entry_type, difference, note)
            events.append(_event("Inventory manually adjusted", current, transaction.signed_quantity))

        self._emit(events)
        return transaction

    def update_item(
        self, item_id: int, changes: Union[schemas.ItemUpdate, Mapping[str, Any]]
    ) -> schemas.ItemRead:
        """Edit name, unit and quantity, writing the matching adjustment in the same unit of work."""
        update = _coerce(schemas.ItemUpdate, changes)
        fields = update.model_dump(exclude_unset=True, exclude={"note"})
        fields = {key: value for key, value in fields.items() if value is not None}
        note = update.note or DEFAULT_EDIT_NOTE
        if "quantity" in fields:
            fields["quantity"] = _non_negative(fields["quantity"])

        events: List[LogEvent] = []
        with self.uow_factory() as uow:
            current = uow.items.find_by_id(item_id, for_update=True)
            if current is None:
                raise ItemNotFound(item_id)
            target = fields.pop("quantity", current.quantity)
            updated = uow.items.update(current, fields)
            adjustment = _adjustment_entry(current.quantity, target)
            if adjustment is not None:
                changed = uow.items.change_quantity(updated, target - current.quantity)
                if changed is None:
                    raise InsufficientStock(current.name, current.quantity, current.quantity - target)
                updated = changed
                entry_type, difference = adjustment
                transaction = uow.transactions.append(updated.id, entry_type, difference, note)
                events.append(_event("Inventory manually adjusted", updated, transaction.signed_quantity))

        self._emit(events)
        return updated

    def create_item(
        self,
        name: str,
        unit: Union[models.UnitEnum, str],
        quantity: QuantityLike = 0,
        note: Optional[str] = DEFAULT_INITIAL_NOTE,
    ) -> schemas.ItemRead:
        """Create an item directly; a positive opening quantity is booked as an add."""
        amount = _non_negative(quantity)

        with self.uow_factory() as uow:
            item = uow.items.create(name, unit, amount)
            if amount > 0:
                uow.transactions.append(item.id, models.TransactionTypeEnum.ADD, amount, note)

        self._emit([_event("Inventory item created", item, amount)])
        return item

    def delete_item(self, item_id: int) -> bool:
        """Hard-delete an item together with its whole ledger."""
        with self.uow_factory() as uow:
            item = uow.items.find_by_id(item_id, for_update=True)
            if item is None:
                raise ItemNotFound(item_id)
            uow.items.delete(item)

        self._emit([_event("Inventory item deleted", item, -item.quantity)])
        return True
