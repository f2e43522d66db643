"""Read-only aggregates over the item store and the transaction log."""

from __future__ import annotations

import os
from typing import Callable, List, Optional

from . import models, schemas
from .errors import ItemNotFound
from .stock_status import StockStatus
from .unit_of_work import AbstractUnitOfWork, SqlAlchemyUnitOfWork

DASHBOARD_RECENT_LIMIT = int(os.getenv("STOCKDB_DASHBOARD_RECENT_LIMIT", "5"))


def _read_unit_of_work() -> SqlAlchemyUnitOfWork:
    from stockdb.database import ReadSessionLocal

    return SqlAlchemyUnitOfWork(ReadSessionLocal)


class InventoryReports:
    def __init__(
        self,
        uow_factory: Callable[[], AbstractUnitOfWork] = _read_unit_of_work,
        recent_limit: int = DASHBOARD_RECENT_LIMIT,
    ):
        self.uow_factory = uow_factory
        self.recent_limit = recent_limit

    def dashboard_stats(self) -> schemas.DashboardStats:
        with self.uow_factory() as uow:
            recent: List[schemas.TransactionWithItem] = []
            for entry in uow.transactions.recent(self.recent_limit):
                item = uow.items.find_by_id(entry.item_id)
                if item is None:
                    continue
                recent.append(schemas.TransactionWithItem(**entry.model_dump(), item=item))
            return schemas.DashboardStats(
                total_items=uow.items.count(),
                total_quantity=uow.items.total_quantity(),
                low_stock_count=uow.items.count_by_status(StockStatus.LOW_STOCK),
                out_of_stock_count=uow.items.count_by_status(StockStatus.OUT_OF_STOCK),
                recent_transactions=recent,
            )

    def item_history(self, item_id: int) -> List[schemas.TransactionRead]:
        with self.uow_factory() as uow:
            if uow.items.find_by_id(item_id) is None:
                raise ItemNotFound(item_id)
            return uow.transactions.history_for(item_id)

    def unique_units(self) -> List[models.UnitEnum]:
        with self.uow_factory() as uow:
            return uow.items.unique_units()

    def search_items(self, filters: Optional[schemas.ItemFilters] = None) -> List[schemas.ItemRead]:
        with self.uow_factory() as uow:
            return uow.items.list(filters)

    def low_stock_items(self) -> List[schemas.ItemRead]:
        return self.search_items(schemas.ItemFilters(status=StockStatus.LOW_STOCK, sort="quantity"))

    def out_of_stock_items(self) -> List[schemas.ItemRead]:
        return self.search_items(schemas.ItemFilters(status=StockStatus.OUT_OF_STOCK))

    def available_items(self) -> List[schemas.ItemRead]:
        """Items that can be deducted from, by name."""
        return [item for item in self.search_items() if item.quantity > 0]

    def item_summary(self, item_id: int) -> schemas.ItemLedgerSummary:
        with self.uow_factory() as uow:
            item = uow.items.find_by_id(item_id)
            if item is None:
                raise ItemNotFound(item_id)
            added, deducted = uow.transactions.totals_for(item_id)
        return schemas.ItemLedgerSummary(item=item, total_added=added, total_deducted=deducted)

    def reconcile(self) -> List[schemas.ItemLedgerSummary]:
        """Items whose ledger balance no longer matches their quantity."""
        with self.uow_factory() as uow:
            summaries = []
            for item in uow.items.list():
                added, deducted = uow.transactions.totals_for(item.id)
                summary = schemas.ItemLedgerSummary(item=item, total_added=added, total_deducted=deducted)
                if not summary.is_consistent:
                    summaries.append(summary)
            return summaries
