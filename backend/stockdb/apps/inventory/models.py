from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from stockdb.database import Base


NAME_MAX_LENGTH = 255
NOTE_MAX_LENGTH = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnitEnum(str, enum.Enum):
    KG = "kg"
    M = "m"
    CM = "cm"
    PCS = "pcs"
    LTR = "ltr"
    BOX = "box"


class TransactionTypeEnum(str, enum.Enum):
    ADD = "add"
    DEDUCT = "deduct"


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (
        UniqueConstraint("name", name="uq_items_name"),
        Index("ix_items_unit", "unit"),
        Index("ix_items_quantity", "quantity"),
        Index("ix_items_quantity_unit", "quantity", "unit"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(NAME_MAX_LENGTH), nullable=False)
    unit = Column(
        SAEnum(
            UnitEnum,
            name="item_unit_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    quantity = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    transactions = relationship(
        "InventoryTransaction",
        back_populates="item",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )


class InventoryTransaction(Base):
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        Index("ix_inventory_transactions_type", "type"),
        Index("ix_inventory_transactions_item_type", "item_id", "type"),
        Index("ix_inventory_transactions_item_date", "item_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(Integer, ForeignKey("items.id", ondelete="CASCADE"), nullable=False)
    type = Column(
        SAEnum(
            TransactionTypeEnum,
            name="inventory_transaction_type_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    quantity = Column(Numeric(12, 2), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    item = relationship("Item", back_populates="transactions", lazy="joined")
