#!/usr/bin/env python3
import argparse
import logging
import os
from typing import List, Optional, Sequence

from stockdb.apps.inventory.errors import DuplicateName
from stockdb.apps.inventory.models import UnitEnum
from stockdb.apps.inventory.services import LedgerEngine
from stockdb.database import create_tables

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SAMPLE_ITEMS = [
    ("Steel Rod", UnitEnum.M, "150.00"),
    ("Copper Wire", UnitEnum.M, "200.50"),
    ("Cement", UnitEnum.KG, "500.00"),
    ("Sand", UnitEnum.KG, "1000.00"),
    ("Bricks", UnitEnum.PCS, "5000.00"),
    ("Paint - White", UnitEnum.LTR, "50.00"),
    ("Paint - Blue", UnitEnum.LTR, "8.50"),  # low stock
    ("Nails (2 inch)", UnitEnum.BOX, "25.00"),
    ("Screws (1 inch)", UnitEnum.BOX, "30.00"),
    ("PVC Pipe", UnitEnum.M, "5.00"),  # low stock
    ("Wooden Planks", UnitEnum.PCS, "75.00"),
    ("Glass Sheets", UnitEnum.PCS, "3.00"),  # low stock
]

# (item name, "add" | "deduct", quantity, note), replayed in order after the opening stock.
SAMPLE_HISTORY = [
    ("Steel Rod", "add", "50.00", "Received from Supplier ABC"),
    ("Steel Rod", "deduct", "25.00", "Used for Project X"),
    ("Cement", "deduct", "100.00", "Construction site A"),
    ("Cement", "add", "200.00", "Monthly supply delivery"),
    ("Bricks", "deduct", "500.00", "Wall construction"),
]

logger = logging.getLogger(__name__)


def seed_inventory(engine: LedgerEngine) -> List[str]:
    """
    Create the sample items with their opening stock, then replay the
    sample history. Items that already exist are left untouched, and the
    history is only replayed for items created by this run.
    """
    created = {}
    for name, unit, quantity in SAMPLE_ITEMS:
        try:
            item = engine.create_item(name, unit, quantity)
        except DuplicateName:
            logger.info("Skipping existing item", extra={"item_name": name})
            continue
        created[name] = item

    for name, action, quantity, note in SAMPLE_HISTORY:
        item = created.get(name)
        if item is None:
            continue
        if action == "add":
            engine.add_batch([{"name": item.name, "unit": item.unit, "quantity": quantity, "note": note}])
        else:
            engine.deduct_batch([{"item_id": item.id, "quantity": quantity, "note": note}])

    return list(created)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Seed the inventory with sample stock items.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the inventory tables before seeding.",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=LOG_LEVEL)

    if args.create_tables:
        create_tables()

    created = seed_inventory(LedgerEngine())
    if not created:
        print("Inventory already seeded; nothing to do.")
        return
    print(f"Seeded {len(created)} item(s).")


if __name__ == "__main__":
    main()
