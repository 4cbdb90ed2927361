"""
Pure domain layer: value objects, settlement aggregation and the clock.

Nothing in this package performs I/O.
"""

from sales_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sales_kernel.domain.dtos import (
    CatalogItem,
    ClientRef,
    ContainerRef,
    LineRequest,
    OperatorContext,
    RateSnapshot,
    Sale,
    SaleLineItem,
)
from sales_kernel.domain.settlement import (
    ItemMetadata,
    SaleAggregate,
    SettlementMatrix,
    aggregate_sales,
    day_window,
    fold_text,
    merge_settlement,
    order_clients,
    order_items,
    settlement_key,
)

__all__ = [
    "CatalogItem",
    "ClientRef",
    "Clock",
    "ContainerRef",
    "DeterministicClock",
    "ItemMetadata",
    "LineRequest",
    "OperatorContext",
    "RateSnapshot",
    "Sale",
    "SaleAggregate",
    "SaleLineItem",
    "SettlementMatrix",
    "SystemClock",
    "aggregate_sales",
    "day_window",
    "fold_text",
    "merge_settlement",
    "order_clients",
    "order_items",
    "settlement_key",
]
