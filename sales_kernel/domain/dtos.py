"""
Domain DTOs -- immutable value objects for sales.

Responsibility:
    Frozen dataclasses that cross every boundary of the kernel: references
    to clients and containers supplied by the caller's directories, the
    operator context threaded through every call, exchange-rate snapshots,
    requested lines, and the committed Sale with its line items.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - SaleLineItem.subtotal == quantity * unit_price (derived, never stored
      independently of its inputs).
    - Sale.total == sum of line subtotals (derived).
    - A Sale always has at least one line (EmptySaleError otherwise).
    - Prices are Decimal; documents carry them as strings so JSON
      round-trips are exact.

Failure modes:
    - EmptySaleError when constructing a Sale without lines.
    - InvalidQuantityError when a SaleLineItem quantity is not a positive int.
    - KeyError / ValueError from from_dict() on malformed documents.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sales_kernel.db.types import money_from_value
from sales_kernel.exceptions import EmptySaleError, InvalidQuantityError


# ---------------------------------------------------------------------------
# Directory references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ClientRef:
    """Client as captured on a sale (id plus display fields)."""

    client_id: str
    name: str = ""
    tax_id: str = ""
    zone: str = ""
    sector: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "client_id": self.client_id,
            "name": self.name,
            "tax_id": self.tax_id,
            "zone": self.zone,
            "sector": self.sector,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ClientRef:
        return cls(
            client_id=data["client_id"],
            name=data.get("name", ""),
            tax_id=data.get("tax_id", ""),
            zone=data.get("zone", ""),
            sector=data.get("sector", ""),
        )


@dataclass(frozen=True)
class ContainerRef:
    """Stock-holding unit (delivery vehicle or warehouse) a sale draws from."""

    container_id: str
    make: str = ""
    model: str = ""
    plate: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "container_id": self.container_id,
            "make": self.make,
            "model": self.model,
            "plate": self.plate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContainerRef:
        return cls(
            container_id=data["container_id"],
            make=data.get("make", ""),
            model=data.get("model", ""),
            plate=data.get("plate", ""),
        )


@dataclass(frozen=True)
class CatalogItem:
    """Catalog entry used to provision a container's stock."""

    item_id: str
    name: str
    presentation: str = ""
    category: str = ""
    segment: str = ""
    unit_price: Decimal = Decimal("0")


@dataclass(frozen=True)
class OperatorContext:
    """
    Explicit session value threaded into every kernel call.

    Replaces any ambient "current user" lookup: the operator whose sales
    are scoped together for the daily close.
    """

    operator_id: str
    operator_name: str = ""
    correlation_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.operator_name or self.operator_id


# ---------------------------------------------------------------------------
# Exchange rates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RateSnapshot:
    """
    Base -> secondary currency multipliers captured at sale time.

    Display-only: prices and totals stay in the base currency.
    """

    base_currency: str
    rates: tuple[tuple[str, Decimal], ...] = ()

    def rate_for(self, currency: str) -> Decimal:
        """Multiplier for ``currency``; the base currency is always 1."""
        if currency == self.base_currency:
            return Decimal("1")
        for code, rate in self.rates:
            if code == currency:
                return rate
        raise KeyError(currency)

    def convert(self, amount: Decimal, currency: str) -> Decimal:
        """Convert a base-currency amount for display (not rounded)."""
        return amount * self.rate_for(currency)

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_currency": self.base_currency,
            "rates": {code: str(rate) for code, rate in self.rates},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RateSnapshot:
        return cls(
            base_currency=data["base_currency"],
            rates=tuple(
                sorted(
                    (code, money_from_value(rate))
                    for code, rate in (data.get("rates") or {}).items()
                )
            ),
        )


# ---------------------------------------------------------------------------
# Sale
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineRequest:
    """One requested (item, quantity) pair from the sale form."""

    item_id: str
    quantity: int


@dataclass(frozen=True)
class SaleLineItem:
    """
    A sold line, priced at the moment of sale.

    unit_price is captured once from the container's stock entry and never
    re-read, so later catalog price changes do not alter the sale.
    """

    item_id: str
    name: str
    presentation: str
    category: str
    segment: str
    unit_price: Decimal
    quantity: int

    def __post_init__(self) -> None:
        if (
            isinstance(self.quantity, bool)
            or not isinstance(self.quantity, int)
            or self.quantity <= 0
        ):
            raise InvalidQuantityError(self.item_id, self.quantity)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "presentation": self.presentation,
            "category": self.category,
            "segment": self.segment,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "subtotal": str(self.subtotal),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SaleLineItem:
        return cls(
            item_id=data["item_id"],
            name=data.get("name", ""),
            presentation=data.get("presentation", ""),
            category=data.get("category", ""),
            segment=data.get("segment", ""),
            unit_price=money_from_value(data["unit_price"]),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class Sale:
    """
    A committed point-of-sale transaction.

    Immutable once created.  Consumed and deleted only by the daily close.
    """

    sale_id: str
    recorded_at: datetime
    operator_id: str
    client: ClientRef
    container: ContainerRef
    lines: tuple[SaleLineItem, ...]
    rates: RateSnapshot
    operator_name: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.lines:
            raise EmptySaleError(self.container.container_id)

    @property
    def total(self) -> Decimal:
        return sum((line.subtotal for line in self.lines), Decimal("0"))

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-safe document body."""
        return {
            "sale_id": self.sale_id,
            "recorded_at": self.recorded_at.isoformat(),
            "operator_id": self.operator_id,
            "operator_name": self.operator_name,
            "client": self.client.to_dict(),
            "container": self.container.to_dict(),
            "lines": [line.to_dict() for line in self.lines],
            "total": str(self.total),
            "rates": self.rates.to_dict(),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_document(cls, body: dict[str, Any]) -> Sale:
        return cls(
            sale_id=body["sale_id"],
            recorded_at=datetime.fromisoformat(body["recorded_at"]),
            operator_id=body["operator_id"],
            operator_name=body.get("operator_name", ""),
            client=ClientRef.from_dict(body["client"]),
            container=ContainerRef.from_dict(body["container"]),
            lines=tuple(SaleLineItem.from_dict(line) for line in body["lines"]),
            rates=RateSnapshot.from_dict(body["rates"]),
            metadata=dict(body.get("metadata") or {}),
        )
