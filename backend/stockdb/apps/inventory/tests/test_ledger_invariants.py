from __future__ import annotations

import random
import threading
from decimal import Decimal
from functools import partial

import pytest

from stockdb.apps.inventory import models
from stockdb.apps.inventory.errors import InsufficientStock
from stockdb.apps.inventory.memory import InMemoryDatabase, InMemoryUnitOfWork
from stockdb.apps.inventory.reports import InventoryReports
from stockdb.apps.inventory.services import LedgerEngine

NAMES = ["Cement", "Sand", "Bricks", "Steel Rod", "PVC Pipe", "Glass Sheets"]
UNITS = [unit.value for unit in models.UnitEnum]


def _random_quantity(rng: random.Random) -> str:
    return f"{rng.randint(1, 3000) / 100:.2f}"


def _assert_ledger_consistent(reports: InventoryReports):
    assert reports.reconcile() == []
    for item in reports.search_items():
        assert item.quantity >= 0


@pytest.mark.parametrize("seed", [3, 17, 2024])
def test_random_batches_keep_ledger_consistent(uow_factory, seed):
    rng = random.Random(seed)
    engine = LedgerEngine(uow_factory)
    reports = InventoryReports(uow_factory)

    for _ in range(40):
        items = reports.search_items()
        roll = rng.random()
        if roll < 0.45 or not items:
            engine.add_batch(
                [
                    {"name": rng.choice(NAMES), "unit": rng.choice(UNITS), "quantity": _random_quantity(rng)}
                    for _ in range(rng.randint(1, 3))
                ]
            )
        elif roll < 0.9:
            entries = [
                {"item_id": rng.choice(items).id, "quantity": _random_quantity(rng)}
                for _ in range(rng.randint(1, 3))
            ]
            before = {item.id: item.quantity for item in items}
            try:
                engine.deduct_batch(entries)
            except InsufficientStock:
                after = {item.id: item.quantity for item in reports.search_items()}
                assert after == before
        else:
            engine.update_item(rng.choice(items).id, {"quantity": _random_quantity(rng)})

        _assert_ledger_consistent(reports)


def test_dashboard_is_stable_without_mutations(uow_factory):
    engine = LedgerEngine(uow_factory)
    reports = InventoryReports(uow_factory)
    engine.add_batch(
        [
            {"name": "Cement", "unit": "kg", "quantity": 500},
            {"name": "Paint - Blue", "unit": "ltr", "quantity": "8.50"},
        ]
    )

    assert reports.dashboard_stats() == reports.dashboard_stats()


def test_concurrent_deductions_never_oversell():
    database = InMemoryDatabase()
    engine = LedgerEngine(partial(InMemoryUnitOfWork, database))
    reports = InventoryReports(partial(InMemoryUnitOfWork, database))
    item = engine.create_item("Bricks", "pcs", 50)

    successes = []
    failures = []
    lock = threading.Lock()

    def worker():
        for _ in range(10):
            try:
                engine.deduct_batch([{"item_id": item.id, "quantity": 1}])
            except InsufficientStock:
                with lock:
                    failures.append(1)
            else:
                with lock:
                    successes.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(successes) == 50
    assert len(failures) == 30
    summary = reports.item_summary(item.id)
    assert summary.item.quantity == Decimal("0.00")
    assert summary.total_deducted == Decimal("50.00")
    assert summary.is_consistent
