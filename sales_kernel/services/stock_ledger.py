"""
StockLedger -- per-container available quantities.

Responsibility:
    Seeds stock entries when catalog items are assigned to a container,
    answers availability reads, and applies sale decrements.

Architecture position:
    Kernel > Services -- flush-only building block (see BaseService).

Invariants enforced:
    - Available quantity never goes negative.  ``decrement`` is a single
      conditional UPDATE (``quantity = quantity - n WHERE quantity >= n``),
      so the check and the write are one atomic statement: two concurrent
      sales racing for the same units cannot both succeed.
    - A refused decrement performs no mutation.  It is reported, never
      clamped.

Failure modes:
    - StockEntryNotFoundError: item not provisioned in the container.
    - StockInsufficientError: fresh quantity is below the requested amount.
    - InvalidQuantityError: amount is not a positive int (decrement) or is
      negative (provision).
    - StockEntryExistsError: provisioning the same (container, item) twice.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select, update

from sales_kernel.domain.dtos import CatalogItem
from sales_kernel.exceptions import (
    InvalidQuantityError,
    StockEntryExistsError,
    StockEntryNotFoundError,
    StockInsufficientError,
)
from sales_kernel.logging_config import get_logger
from sales_kernel.models.stock import StockEntry
from sales_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def _is_count(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class DecrementResult:
    """Outcome of an applied decrement."""

    container_id: str
    item_id: str
    amount: int
    remaining: int


class StockLedger(BaseService):
    """
    Stock ledger keyed by (container_id, item_id).

    Contract:
        ``decrement`` either applies the full amount or raises without
        touching the row.  Reads after a successful decrement (in the same
        transaction, or in any transaction after commit) see the new value.
    """

    def provision(
        self,
        container_id: str,
        item: CatalogItem,
        quantity: int = 0,
    ) -> StockEntry:
        """Seed ``item`` into ``container_id`` with ``quantity`` units."""
        if not _is_count(quantity) or quantity < 0:
            raise InvalidQuantityError(item.item_id, quantity)

        existing = self.session.scalars(
            select(StockEntry.id).where(
                StockEntry.container_id == container_id,
                StockEntry.item_id == item.item_id,
            )
        ).first()
        if existing is not None:
            raise StockEntryExistsError(container_id, item.item_id)

        entry = StockEntry(
            container_id=container_id,
            item_id=item.item_id,
            name=item.name,
            presentation=item.presentation,
            category=item.category,
            segment=item.segment,
            unit_price=item.unit_price,
            quantity=quantity,
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "stock_provisioned",
            extra={
                "container_id": container_id,
                "item_id": item.item_id,
                "quantity": quantity,
            },
        )
        return entry

    def get_entry(self, container_id: str, item_id: str) -> StockEntry:
        """
        The stock entry for (container_id, item_id), refreshed from the database.

        Raises:
            StockEntryNotFoundError: item not provisioned in the container.
        """
        entry = self.session.scalars(
            select(StockEntry)
            .where(
                StockEntry.container_id == container_id,
                StockEntry.item_id == item_id,
            )
            .execution_options(populate_existing=True)
        ).one_or_none()
        if entry is None:
            raise StockEntryNotFoundError(container_id, item_id)
        return entry

    def get_available(self, container_id: str, item_id: str) -> int:
        """
        Current available quantity.

        Raises:
            StockEntryNotFoundError: item not provisioned in the container.
        """
        quantity = self.session.execute(
            select(StockEntry.quantity).where(
                StockEntry.container_id == container_id,
                StockEntry.item_id == item_id,
            )
        ).scalar_one_or_none()
        if quantity is None:
            raise StockEntryNotFoundError(container_id, item_id)
        return quantity

    def list_entries(
        self,
        container_id: str,
        category: str | None = None,
    ) -> list[StockEntry]:
        """Entries of a container, optionally one category, ordered by name."""
        stmt = select(StockEntry).where(StockEntry.container_id == container_id)
        if category:
            stmt = stmt.where(StockEntry.category == category)
        stmt = stmt.order_by(StockEntry.name, StockEntry.item_id).execution_options(
            populate_existing=True
        )
        return list(self.session.scalars(stmt))

    def decrement(self, container_id: str, item_id: str, amount: int) -> DecrementResult:
        """
        Remove ``amount`` units if, and only if, that many are available now.

        Raises:
            InvalidQuantityError: amount is not a positive int.
            StockEntryNotFoundError: item not provisioned in the container.
            StockInsufficientError: fewer than ``amount`` units available.
        """
        if not _is_count(amount) or amount <= 0:
            raise InvalidQuantityError(item_id, amount)

        # INVARIANT: quantity >= 0 -- validate at write time, atomically
        result = self.session.execute(
            update(StockEntry)
            .where(
                StockEntry.container_id == container_id,
                StockEntry.item_id == item_id,
                StockEntry.quantity >= amount,
            )
            .values(quantity=StockEntry.quantity - amount)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            available = self.get_available(container_id, item_id)
            logger.warning(
                "stock_decrement_refused",
                extra={
                    "container_id": container_id,
                    "item_id": item_id,
                    "requested": amount,
                    "available": available,
                },
            )
            raise StockInsufficientError(container_id, item_id, available, amount)

        remaining = self.get_available(container_id, item_id)
        logger.debug(
            "stock_decremented",
            extra={
                "container_id": container_id,
                "item_id": item_id,
                "amount": amount,
                "remaining": remaining,
            },
        )
        return DecrementResult(
            container_id=container_id,
            item_id=item_id,
            amount=amount,
            remaining=remaining,
        )
