"""Kernel services: stock ledger, document store, rates, sales and the daily close."""

from sales_kernel.services.base import BaseService
from sales_kernel.services.consolidation_service import (
    ConsolidationService,
    SettlementResult,
    SettlementStatus,
)
from sales_kernel.services.document_store import DocumentStore, Filter
from sales_kernel.services.rate_provider import (
    RateProvider,
    StaticRateProvider,
    StoredRateProvider,
)
from sales_kernel.services.sale_service import (
    LineDecrementOutcome,
    SaleResult,
    SaleService,
    SaleStatus,
)
from sales_kernel.services.stock_ledger import DecrementResult, StockLedger

__all__ = [
    "BaseService",
    "ConsolidationService",
    "DecrementResult",
    "DocumentStore",
    "Filter",
    "LineDecrementOutcome",
    "RateProvider",
    "SaleResult",
    "SaleService",
    "SaleStatus",
    "SettlementResult",
    "SettlementStatus",
    "StaticRateProvider",
    "StockLedger",
    "StoredRateProvider",
]
