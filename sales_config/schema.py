"""
Route sales configuration schema.

Frozen dataclasses that the YAML loader produces.  Every section has
defaults, so an empty file yields a working single-device configuration
(in-memory SQLite, USD base, atomic commits, UTC day window).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Where sales, settlements and stock live."""

    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5


@dataclass(frozen=True)
class CurrencyConfig:
    """
    Base currency and the secondary multipliers used when no rates have
    been published yet.
    """

    base: str = "USD"
    default_rates: tuple[tuple[str, Decimal], ...] = ()

    def default_rates_map(self) -> dict[str, Decimal]:
        return dict(self.default_rates)


@dataclass(frozen=True)
class SalesConfig:
    """Sale commit behavior."""

    # True: sale + decrements in one transaction.  False: sale first, then
    # one commit per decrement, reporting PARTIAL_COMMIT on refusal.
    atomic_commit: bool = True


@dataclass(frozen=True)
class ConsolidationConfig:
    """Daily close behavior."""

    # IANA zone whose calendar day bounds a close
    timezone: str = "UTC"


@dataclass(frozen=True)
class RouteSalesConfig:
    """Complete, validated configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    currency: CurrencyConfig = field(default_factory=CurrencyConfig)
    sales: SalesConfig = field(default_factory=SalesConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    source: str | None = None
    checksum: str = ""
