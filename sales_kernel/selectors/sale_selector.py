"""
Module: sales_kernel.selectors.sale_selector
Responsibility: Read access to committed, not yet consolidated sales (the
    sales archive).  Sales disappear from here once a daily close retires
    them.
Architecture position: Kernel > Selectors.

Failure modes:
    - ValueError / KeyError if a stored sale document is malformed.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from sales_kernel.domain.clock import to_utc
from sales_kernel.domain.dtos import Sale
from sales_kernel.domain.settlement import fold_text
from sales_kernel.models.document import SALES_COLLECTION, Document
from sales_kernel.selectors.base import BaseSelector


class SaleSelector(BaseSelector):
    """Queries over the ``sales`` collection."""

    def _base(self):
        return select(Document.body).where(Document.collection == SALES_COLLECTION)

    def _load(self, stmt) -> list[Sale]:
        stmt = stmt.order_by(Document.recorded_at, Document.key)
        return [Sale.from_document(body) for body in self.session.scalars(stmt)]

    def get(self, sale_id: str) -> Sale | None:
        body = self.session.scalars(self._base().where(Document.key == sale_id)).first()
        if body is None:
            return None
        return Sale.from_document(body)

    def list_for_operator(self, operator_id: str) -> list[Sale]:
        """Every open sale of an operator, oldest first."""
        return self._load(self._base().where(Document.operator_id == operator_id))

    def list_in_window(
        self,
        operator_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Sale]:
        """Open sales of an operator with ``start <= recorded_at <= end``."""
        return self._load(
            self._base().where(
                Document.operator_id == operator_id,
                Document.recorded_at >= to_utc(start),
                Document.recorded_at <= to_utc(end),
            )
        )

    def search(self, operator_id: str, text: str) -> list[Sale]:
        """
        Open sales whose client name, client tax id, or container plate
        contains ``text`` (case and accent insensitive).
        """
        needle = fold_text(text.strip())
        sales = self.list_for_operator(operator_id)
        if not needle:
            return sales
        return [
            sale
            for sale in sales
            if any(
                needle in fold_text(value)
                for value in (sale.client.name, sale.client.tax_id, sale.container.plate)
            )
        ]
