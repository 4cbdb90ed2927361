"""
Module: sales_kernel.models.stock
Responsibility: ORM persistence for the per-container stock ledger.  One row
    per (container, item) holds the item's display metadata, its unit price
    in the base currency, and the quantity currently available.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity >= 0.  Enforced by a CHECK constraint at the database and by
      the conditional UPDATE in StockLedger.decrement; a write that would
      drive it negative is refused, never clamped.
    - (container_id, item_id) is unique.

Failure modes:
    - IntegrityError if a raw write bypasses StockLedger and violates the
      CHECK or UNIQUE constraint.
"""

from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sales_kernel.db.base import TrackedBase


class StockEntry(TrackedBase):
    """
    Available quantity of one catalog item inside one container.

    Guarantees:
        - quantity is never negative.
        - unit_price is the price charged when the item is sold from this
          container; it is copied into each sale line at sale time.

    Non-goals:
        - Catalog management.  Name, presentation, category, segment and
          price are copied from the catalog when the entry is provisioned.
    """

    __tablename__ = "stock_entries"

    __table_args__ = (
        UniqueConstraint("container_id", "item_id", name="uq_stock_container_item"),
        CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        Index("idx_stock_container", "container_id"),
        Index("idx_stock_container_category", "container_id", "category"),
    )

    container_id: Mapped[str] = mapped_column(String(64), nullable=False)

    item_id: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(400), nullable=False)

    presentation: Mapped[str] = mapped_column(String(400), nullable=False, default="")

    category: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    segment: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(18, 4),
        nullable=False,
        default=Decimal("0"),
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<StockEntry {self.container_id}/{self.item_id} qty={self.quantity}>"
