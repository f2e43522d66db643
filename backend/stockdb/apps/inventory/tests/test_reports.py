from __future__ import annotations

from decimal import Decimal

import pytest

from stockdb.apps.inventory import models, schemas
from stockdb.apps.inventory.errors import ItemNotFound
from stockdb.apps.inventory.reports import InventoryReports
from stockdb.apps.inventory.services import LedgerEngine


@pytest.fixture()
def stocked(uow_factory):
    engine = LedgerEngine(uow_factory)
    items = {
        name: engine.create_item(name, unit, quantity)
        for name, unit, quantity in [
            ("Cement", "kg", "500.00"),
            ("Paint - Blue", "ltr", "8.50"),
            ("PVC Pipe", "m", "5.00"),
            ("Sand", "kg", "0"),
            ("Bricks", "pcs", "5000.00"),
        ]
    }
    engine.deduct_batch([{"item_id": items["Bricks"].id, "quantity": 500, "note": "Wall construction"}])
    engine.add_batch([{"name": "Cement", "unit": "kg", "quantity": 200, "note": "Monthly supply delivery"}])
    return items


def _names(items):
    return [item.name for item in items]


def test_dashboard_stats(uow_factory, stocked):
    stats = InventoryReports(uow_factory, recent_limit=3).dashboard_stats()

    assert stats.total_items == 5
    assert stats.total_quantity == Decimal("5213.50")
    assert stats.low_stock_count == 2
    assert stats.out_of_stock_count == 1
    assert [entry.note for entry in stats.recent_transactions] == [
        "Monthly supply delivery",
        "Wall construction",
        "Initial stock",
    ]
    newest = stats.recent_transactions[0]
    assert newest.item.name == "Cement"
    assert newest.item.quantity == Decimal("700.00")


def test_dashboard_stats_on_empty_inventory(uow_factory):
    stats = InventoryReports(uow_factory).dashboard_stats()

    assert stats.total_items == 0
    assert stats.total_quantity == Decimal("0.00")
    assert stats.recent_transactions == []


def test_item_history(uow_factory, stocked):
    reports = InventoryReports(uow_factory)

    history = reports.item_history(stocked["Bricks"].id)

    assert [entry.type for entry in history] == [
        models.TransactionTypeEnum.DEDUCT,
        models.TransactionTypeEnum.ADD,
    ]
    with pytest.raises(ItemNotFound):
        reports.item_history(12345)


def test_unique_units(uow_factory, stocked):
    assert InventoryReports(uow_factory).unique_units() == [
        models.UnitEnum.KG,
        models.UnitEnum.LTR,
        models.UnitEnum.M,
        models.UnitEnum.PCS,
    ]


def test_stock_level_listings(uow_factory, stocked):
    reports = InventoryReports(uow_factory)

    assert _names(reports.low_stock_items()) == ["PVC Pipe", "Paint - Blue"]
    assert _names(reports.out_of_stock_items()) == ["Sand"]
    assert _names(reports.available_items()) == ["Bricks", "Cement", "PVC Pipe", "Paint - Blue"]


def test_search_items_filters(uow_factory, stocked):
    reports = InventoryReports(uow_factory)

    assert _names(reports.search_items(schemas.ItemFilters(search="paint"))) == ["Paint - Blue"]
    assert _names(reports.search_items(schemas.ItemFilters(unit="kg", sort="quantity", direction="desc"))) == [
        "Cement",
        "Sand",
    ]


def test_item_summary_and_reconcile(uow_factory, stocked):
    reports = InventoryReports(uow_factory)
    engine = LedgerEngine(uow_factory)

    summary = reports.item_summary(stocked["Cement"].id)
    assert summary.total_added == Decimal("700.00")
    assert summary.total_deducted == Decimal("0.00")
    assert summary.ledger_balance == Decimal("700.00")
    assert summary.is_consistent
    assert reports.reconcile() == []

    # A stand-alone adjust leaves the quantity to the caller, so until the
    # caller applies it the item shows up as out of balance.
    engine.adjust(stocked["Sand"], 0, 4)
    (drifted,) = reports.reconcile()
    assert drifted.item.name == "Sand"
    assert drifted.ledger_balance == Decimal("4.00")

    with pytest.raises(ItemNotFound):
        reports.item_summary(12345)
