"""
Inventory module.

Tracks stock items and the append-only ledger of additions and deductions
that explains every item's current quantity.
"""

from . import models  # noqa: F401
from .reports import InventoryReports  # noqa: F401
from .services import LedgerEngine  # noqa: F401
