# backend/stockdb/__init__.py
"""
Import ORM models from each app so that Base.metadata.create_all() sees
every table.

The actual model classes are kept in stockdb/apps/*/models.py.
"""

from .apps.inventory import models as inventory_models        # items + ledger entries

__all__ = [
    "inventory_models",
]
