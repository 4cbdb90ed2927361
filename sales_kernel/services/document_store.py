"""
DocumentStore -- opaque keyed JSON documents with indexed range queries.

Responsibility:
    The four store primitives the kernel consumes: ``get``, ``list`` with
    equality/range filters on indexed fields, ``put`` with an optional
    deep merge, and ``delete``.  Sales, settlements and configuration
    documents all live here, one collection each.

Architecture position:
    Kernel > Services -- flush-only building block (see BaseService).

Invariants enforced:
    - Filters are accepted only on the indexed projections ``operator_id``
      and ``recorded_at``; anything else raises UnsupportedFilterError
      instead of silently scanning JSON.
    - ``recorded_at`` is normalized to UTC on write and on every filter
      bound, so comparisons hold on backends that drop tzinfo (SQLite).
    - Bodies handed out are deep copies; mutating a returned dict never
      changes a tracked row.

Failure modes:
    - UnsupportedFilterError for a non-indexed field or unknown operator.
    - DocumentBodyError when put() receives something other than a mapping.
"""

from __future__ import annotations

import copy
import operator
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select

from sales_kernel.domain.clock import to_utc
from sales_kernel.exceptions import DocumentBodyError, UnsupportedFilterError
from sales_kernel.logging_config import get_logger
from sales_kernel.models.document import Document
from sales_kernel.services.base import BaseService

logger = get_logger("services.document_store")

_INDEXED_FIELDS = {
    "operator_id": Document.operator_id,
    "recorded_at": Document.recorded_at,
}

_OPERATORS = {
    "==": operator.eq,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass(frozen=True)
class Filter:
    """One ``field op value`` condition for DocumentStore.list()."""

    field: str
    op: str
    value: Any


def deep_merge(base: Mapping[str, Any], patch: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``patch`` merged in; nested mappings merge recursively."""
    merged = copy.deepcopy(dict(base))
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _project_recorded_at(body: Mapping[str, Any]) -> datetime | None:
    raw = body.get("recorded_at")
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return to_utc(raw)
    return to_utc(datetime.fromisoformat(str(raw)))


class DocumentStore(BaseService):
    """
    Keyed JSON document store over the ``documents`` table.

    Usage:
        store = DocumentStore(session)
        store.put("sales", sale_id, sale.to_document())
        rows = store.list("sales", [
            Filter("operator_id", "==", "op-1"),
            Filter("recorded_at", ">=", start),
            Filter("recorded_at", "<=", end),
        ])
    """

    def _find(self, collection: str, key: str) -> Document | None:
        return self.session.scalars(
            select(Document).where(
                Document.collection == collection,
                Document.key == key,
            )
        ).one_or_none()

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """Body of ``collection/key``, or None when absent."""
        row = self._find(collection, key)
        if row is None:
            return None
        return copy.deepcopy(row.body)

    def list(
        self,
        collection: str,
        filters: Iterable[Filter | tuple[str, str, Any]] = (),
    ) -> list[tuple[str, dict[str, Any]]]:
        """
        (key, body) pairs of ``collection`` matching every filter.

        Results are ordered by recorded_at, then key.

        Raises:
            UnsupportedFilterError: field is not indexed or op is unknown.
        """
        stmt = select(Document).where(Document.collection == collection)
        for item in filters:
            flt = item if isinstance(item, Filter) else Filter(*item)
            column = _INDEXED_FIELDS.get(flt.field)
            compare = _OPERATORS.get(flt.op)
            if column is None or compare is None:
                raise UnsupportedFilterError(flt.field, flt.op)
            value = flt.value
            if flt.field == "recorded_at":
                value = to_utc(value)
            stmt = stmt.where(compare(column, value))
        stmt = stmt.order_by(Document.recorded_at, Document.key)

        return [
            (row.key, copy.deepcopy(row.body))
            for row in self.session.scalars(stmt)
        ]

    def put(
        self,
        collection: str,
        key: str,
        value: Mapping[str, Any],
        merge: bool = False,
    ) -> dict[str, Any]:
        """
        Create or overwrite ``collection/key``.

        With ``merge=True`` nested mappings are merged into the existing
        body instead of replacing it.  Returns the stored body.
        """
        if not isinstance(value, Mapping):
            raise DocumentBodyError(collection, key)

        row = self._find(collection, key)
        if row is not None and merge:
            body = deep_merge(row.body, value)
        else:
            body = copy.deepcopy(dict(value))

        operator_id = body.get("operator_id")
        recorded_at = _project_recorded_at(body)

        if row is None:
            row = Document(
                collection=collection,
                key=key,
                body=body,
                operator_id=operator_id,
                recorded_at=recorded_at,
            )
            self.session.add(row)
        else:
            row.body = body
            row.operator_id = operator_id
            row.recorded_at = recorded_at
        self.session.flush()

        logger.debug(
            "document_put",
            extra={"collection": collection, "key": key, "merge": merge},
        )
        return copy.deepcopy(body)

    def delete(self, collection: str, key: str) -> bool:
        """Delete ``collection/key``.  Returns False if it did not exist."""
        row = self._find(collection, key)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        logger.debug("document_deleted", extra={"collection": collection, "key": key})
        return True
