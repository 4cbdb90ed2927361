"""
Settlement -- pure aggregation of a day's sales into a per-client matrix.

Responsibility:
    Sum sold quantities per (client, item), snapshot item display metadata,
    compute the deterministic column ordering used by reports, merge a new
    aggregate into an existing settlement, and compute the local-day window
    a close covers.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every item id that appears in any client's quantities has an
      ItemMetadata entry (ValueError on construction otherwise).
    - Merging sums quantities per (client, item); it never overwrites.
    - A sale id absorbed into a settlement is never summed a second time.
    - Column ordering is a total order: folded display name, then item id.

Failure modes:
    - ValueError from SettlementMatrix when metadata is missing for an item
      or a quantity is negative.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from typing import Any

from sales_kernel.domain.dtos import ClientRef, Sale

SETTLEMENT_COLLECTION = "settlements"

# Last representable instant of a day at millisecond resolution
END_OF_DAY = time(23, 59, 59, 999000)


def settlement_key(day: date, operator_id: str) -> str:
    """Document key for the settlement of ``operator_id`` on ``day``."""
    return f"{day.isoformat()}_{operator_id}"


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Inclusive [00:00:00.000, 23:59:59.999] bounds of ``day`` in ``tz``."""
    return (
        datetime.combine(day, time.min, tzinfo=tz),
        datetime.combine(day, END_OF_DAY, tzinfo=tz),
    )


def fold_text(text: str) -> str:
    """
    Collation key for display text.

    Decomposes accented characters, drops the combining marks, and
    casefolds, so "Álvaro" and "alvaro" compare equal.
    """
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


@dataclass(frozen=True)
class ItemMetadata:
    """Display snapshot of an item taken at closure time."""

    name: str
    presentation: str = ""

    @property
    def label(self) -> str:
        return f"{self.name} ({self.presentation})"

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "presentation": self.presentation}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ItemMetadata:
        return cls(name=data.get("name", ""), presentation=data.get("presentation", ""))


def order_items(
    item_ids: Iterable[str],
    metadata: Mapping[str, ItemMetadata],
) -> tuple[str, ...]:
    """Sort item ids by folded display name, ties broken by item id."""

    def sort_key(item_id: str) -> tuple[str, str]:
        meta = metadata.get(item_id)
        return (fold_text(meta.name if meta else item_id), item_id)

    return tuple(sorted(set(item_ids), key=sort_key))


def order_clients(clients: Mapping[str, ClientRef]) -> tuple[str, ...]:
    """Sort client ids by folded display name, ties broken by client id."""
    return tuple(
        sorted(
            clients,
            key=lambda client_id: (fold_text(clients[client_id].name), client_id),
        )
    )


@dataclass(frozen=True)
class SaleAggregate:
    """Quantities, clients and metadata summed from a batch of sales."""

    clients: dict[str, ClientRef] = field(default_factory=dict)
    quantities: dict[str, dict[str, int]] = field(default_factory=dict)
    item_metadata: dict[str, ItemMetadata] = field(default_factory=dict)
    sale_ids: frozenset[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not self.sale_ids


def aggregate_sales(sales: Iterable[Sale]) -> SaleAggregate:
    """
    Sum every line of every sale into ``quantities[client][item]``.

    Client references and item metadata are first-seen wins; a later sale
    carrying different display text for the same id does not fail and does
    not replace the first value.
    """
    clients: dict[str, ClientRef] = {}
    quantities: dict[str, dict[str, int]] = {}
    metadata: dict[str, ItemMetadata] = {}
    sale_ids: set[str] = set()

    for sale in sales:
        sale_ids.add(sale.sale_id)
        client_id = sale.client.client_id
        clients.setdefault(client_id, sale.client)
        row = quantities.setdefault(client_id, {})
        for line in sale.lines:
            row[line.item_id] = row.get(line.item_id, 0) + line.quantity
            metadata.setdefault(
                line.item_id,
                ItemMetadata(name=line.name, presentation=line.presentation),
            )

    return SaleAggregate(
        clients=clients,
        quantities=quantities,
        item_metadata=metadata,
        sale_ids=frozenset(sale_ids),
    )


@dataclass(frozen=True)
class SettlementMatrix:
    """
    Immutable daily settlement for one operator.

    quantities maps client id -> item id -> summed quantity.  sale_ids is
    the set of sales already absorbed, so a re-run of the close after a
    partial retirement failure does not count them twice.
    """

    settlement_key: str
    day: date
    operator_id: str
    operator_name: str
    closed_at: datetime
    clients: dict[str, ClientRef] = field(default_factory=dict)
    quantities: dict[str, dict[str, int]] = field(default_factory=dict)
    item_metadata: dict[str, ItemMetadata] = field(default_factory=dict)
    sale_ids: frozenset[str] = frozenset()
    close_count: int = 1

    def __post_init__(self) -> None:
        for client_id, row in self.quantities.items():
            if client_id not in self.clients:
                raise ValueError(f"Settlement row for unknown client {client_id}")
            for item_id, qty in row.items():
                if item_id not in self.item_metadata:
                    raise ValueError(f"No metadata snapshot for item {item_id}")
                if qty < 0:
                    raise ValueError(f"Negative settlement quantity for {item_id}")

    def item_ids(self) -> set[str]:
        return {item_id for row in self.quantities.values() for item_id in row}

    def item_order(self) -> tuple[str, ...]:
        return order_items(self.item_ids(), self.item_metadata)

    def client_order(self) -> tuple[str, ...]:
        return order_clients(self.clients)

    def quantity(self, client_id: str, item_id: str) -> int:
        return self.quantities.get(client_id, {}).get(item_id, 0)

    def column_totals(self, item_order: Iterable[str] | None = None) -> dict[str, int]:
        order = tuple(item_order) if item_order is not None else self.item_order()
        return {
            item_id: sum(row.get(item_id, 0) for row in self.quantities.values())
            for item_id in order
        }

    def to_document(self) -> dict[str, Any]:
        return {
            "settlement_key": self.settlement_key,
            "day": self.day.isoformat(),
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "closed_at": self.closed_at.isoformat(),
            "recorded_at": self.closed_at.isoformat(),
            "clients": {cid: ref.to_dict() for cid, ref in self.clients.items()},
            "quantities": {cid: dict(row) for cid, row in self.quantities.items()},
            "item_metadata": {
                item_id: meta.to_dict() for item_id, meta in self.item_metadata.items()
            },
            "item_order": list(self.item_order()),
            "sale_ids": sorted(self.sale_ids),
            "close_count": self.close_count,
        }

    @classmethod
    def from_document(cls, body: Mapping[str, Any]) -> SettlementMatrix:
        return cls(
            settlement_key=body["settlement_key"],
            day=date.fromisoformat(body["day"]),
            operator_id=body["operator_id"],
            operator_name=body.get("operator_name", ""),
            closed_at=datetime.fromisoformat(body["closed_at"]),
            clients={
                cid: ClientRef.from_dict(ref)
                for cid, ref in (body.get("clients") or {}).items()
            },
            quantities={
                cid: {item_id: int(qty) for item_id, qty in row.items()}
                for cid, row in (body.get("quantities") or {}).items()
            },
            item_metadata={
                item_id: ItemMetadata.from_dict(meta)
                for item_id, meta in (body.get("item_metadata") or {}).items()
            },
            sale_ids=frozenset(body.get("sale_ids") or ()),
            close_count=int(body.get("close_count", 1)),
        )


def merge_settlement(
    existing: SettlementMatrix | None,
    aggregate: SaleAggregate,
    *,
    key: str,
    day: date,
    operator_id: str,
    operator_name: str,
    closed_at: datetime,
) -> SettlementMatrix:
    """
    Fold ``aggregate`` into ``existing`` by summing per (client, item).

    The caller is expected to have excluded sales already listed in
    ``existing.sale_ids``.  Existing client references and item metadata
    are kept; ids seen for the first time are added.
    """
    if existing is None:
        return SettlementMatrix(
            settlement_key=key,
            day=day,
            operator_id=operator_id,
            operator_name=operator_name,
            closed_at=closed_at,
            clients=dict(aggregate.clients),
            quantities={cid: dict(row) for cid, row in aggregate.quantities.items()},
            item_metadata=dict(aggregate.item_metadata),
            sale_ids=aggregate.sale_ids,
        )

    quantities = {cid: dict(row) for cid, row in existing.quantities.items()}
    for client_id, row in aggregate.quantities.items():
        merged = quantities.setdefault(client_id, {})
        for item_id, qty in row.items():
            merged[item_id] = merged.get(item_id, 0) + qty

    clients = dict(existing.clients)
    for client_id, ref in aggregate.clients.items():
        clients.setdefault(client_id, ref)

    metadata = dict(existing.item_metadata)
    for item_id, meta in aggregate.item_metadata.items():
        metadata.setdefault(item_id, meta)

    return SettlementMatrix(
        settlement_key=key,
        day=day,
        operator_id=operator_id,
        operator_name=existing.operator_name or operator_name,
        closed_at=closed_at,
        clients=clients,
        quantities=quantities,
        item_metadata=metadata,
        sale_ids=existing.sale_ids | aggregate.sale_ids,
        close_count=existing.close_count + 1,
    )
