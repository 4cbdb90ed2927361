"""
Module: sales_kernel.models.document
Responsibility: ORM persistence for the opaque document store.  Sales,
    settlements and configuration documents are JSON bodies addressed by
    (collection, key).
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - (collection, key) is unique: a put to an existing key replaces or
      merges the body, it never creates a second row.
    - operator_id and recorded_at are projections of the body kept in
      indexed columns so range-filtered queries do not scan JSON.
      recorded_at is always stored in UTC.

Failure modes:
    - IntegrityError on a concurrent insert of the same (collection, key).
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from sales_kernel.db.base import TrackedBase
from sales_kernel.db.types import JSONBody

SALES_COLLECTION = "sales"


class Document(TrackedBase):
    """
    One JSON document in a named collection.

    Guarantees:
        - body is a JSON object (dict), never a scalar or list.
        - operator_id / recorded_at mirror the body fields of the same
          name when present, else NULL.
    """

    __tablename__ = "documents"

    __table_args__ = (
        UniqueConstraint("collection", "key", name="uq_document_collection_key"),
        Index("idx_document_operator_recorded", "collection", "operator_id", "recorded_at"),
    )

    collection: Mapped[str] = mapped_column(String(64), nullable=False)

    key: Mapped[str] = mapped_column(String(160), nullable=False)

    body: Mapped[dict[str, Any]] = mapped_column(JSONBody, nullable=False)

    # Indexed projections of body fields
    operator_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    recorded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.key}>"
