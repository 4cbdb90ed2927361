"""
Kernel Invariants Contract.

These invariants are structural law.  No configuration value may turn
them off; ``sales.atomic_commit`` only chooses how a sale's writes are
grouped, never whether stock may go negative.

This module exists solely to declare the invariants explicitly.  The
enforcement is distributed across StockLedger, SaleService,
ConsolidationService, the settlement domain and database constraints.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """Available quantity never drops below zero.  Enforced by the
    conditional UPDATE in StockLedger.decrement and a DB CHECK constraint."""

    SALE_TOTAL_INTEGRITY = "sale_total_integrity"
    """Line subtotal is quantity * unit price and the sale total is the sum
    of subtotals.  Both are derived properties of the Sale DTO."""

    NO_EMPTY_SALE = "no_empty_sale"
    """A sale without lines is never persisted.  Enforced by SaleService
    validation and Sale construction."""

    SETTLEMENT_BEFORE_RETIREMENT = "settlement_before_retirement"
    """No sale is deleted before its settlement is committed.  Enforced by
    the ordering inside ConsolidationService.close_day."""

    SETTLEMENT_MERGE_BY_SUM = "settlement_merge_by_sum"
    """Repeated closes of one (day, operator) add quantities and never
    re-count an absorbed sale.  Enforced by merge_settlement."""

    METADATA_SNAPSHOT_COMPLETE = "metadata_snapshot_complete"
    """Every item in a settlement matrix has a display metadata snapshot.
    Enforced by SettlementMatrix construction."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "sales_services",
    "sales_config",
)
