"""
sales_services.orchestrator -- Central wiring for the route sales kernel.

Responsibility:
    Creates every kernel service exactly once, configured from a
    ``RouteSalesConfig``, and exposes the caller-facing API:
    ``commit_sale``, ``close_day``, ``serialize_sale_report`` and
    ``serialize_settlement_report``.

Architecture position:
    Services -- the only layer that reads ``sales_config`` and passes
    plain values into ``sales_kernel`` constructors.

Invariants enforced:
    - Single-instance lifecycle: one StockLedger, DocumentStore and rate
      provider per orchestrator, shared by the sale and close services.
    - All service wiring is visible in ``__init__``.

Usage:
    orchestrator = SalesOrchestrator.from_config()
    result = orchestrator.commit_sale(context, client, container, lines)
    if result.is_success:
        text = orchestrator.serialize_sale_report(result.sale)
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

from sqlalchemy.orm import Session

from sales_config import RouteSalesConfig, get_active_config
from sales_kernel.db.engine import create_tables, get_session, init_engine_from_url
from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.dtos import ClientRef, ContainerRef, OperatorContext, Sale
from sales_kernel.domain.settlement import SettlementMatrix
from sales_kernel.logging_config import get_logger
from sales_kernel.reporting import csv_report
from sales_kernel.selectors.sale_selector import SaleSelector
from sales_kernel.services.consolidation_service import (
    ConsolidationService,
    SettlementResult,
)
from sales_kernel.services.document_store import DocumentStore
from sales_kernel.services.rate_provider import RateProvider, StoredRateProvider
from sales_kernel.services.sale_service import LineInput, SaleResult, SaleService
from sales_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.orchestrator")


class SalesOrchestrator:
    """DI container and public API of the route sales core."""

    def __init__(
        self,
        session: Session,
        config: RouteSalesConfig,
        clock: Clock | None = None,
        rate_provider: RateProvider | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()

        self._store = DocumentStore(session)
        self._ledger = StockLedger(session)
        self._rates = rate_provider or StoredRateProvider(
            session,
            base_currency=config.currency.base,
            default_rates=config.currency.default_rates_map(),
        )
        self._sale_service = SaleService(
            session,
            self._rates,
            clock=self._clock,
            atomic_commit=config.sales.atomic_commit,
            ledger=self._ledger,
            store=self._store,
        )
        self._consolidation = ConsolidationService(
            session,
            clock=self._clock,
            timezone=config.consolidation.timezone,
            store=self._store,
        )
        self._sales = SaleSelector(session)

    @classmethod
    def from_config(
        cls,
        config: RouteSalesConfig | None = None,
        clock: Clock | None = None,
    ) -> SalesOrchestrator:
        """Initialize the engine from ``config.database`` and build an orchestrator."""
        config = config or get_active_config()
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        create_tables()
        logger.info(
            "orchestrator_ready",
            extra={"config_checksum": config.checksum},
        )
        return cls(get_session(), config, clock=clock)

    # Services

    @property
    def session(self) -> Session:
        return self._session

    @property
    def config(self) -> RouteSalesConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def ledger(self) -> StockLedger:
        return self._ledger

    @property
    def rates(self) -> RateProvider:
        return self._rates

    @property
    def sales(self) -> SaleSelector:
        return self._sales

    @property
    def consolidation(self) -> ConsolidationService:
        return self._consolidation

    # Caller API

    def commit_sale(
        self,
        context: OperatorContext,
        client: ClientRef | None,
        container: ContainerRef | None,
        lines: LineInput,
    ) -> SaleResult:
        return self._sale_service.commit_sale(context, client, container, lines)

    def close_day(
        self,
        context: OperatorContext,
        day: date | None = None,
    ) -> SettlementResult:
        return self._consolidation.close_day(context, day)

    def serialize_sale_report(self, sale: Sale) -> str:
        return csv_report.serialize_sale_report(sale)

    def serialize_settlement_report(self, matrix: SettlementMatrix) -> str:
        return csv_report.serialize_settlement_report(matrix)

    def export_sale_report(self, sale: Sale, directory: Path | str) -> Path:
        """Write the sale report file and return its path."""
        return csv_report.write_report(
            directory,
            csv_report.sale_report_filename(sale),
            self.serialize_sale_report(sale),
        )

    def export_settlement_report(
        self,
        matrix: SettlementMatrix,
        directory: Path | str,
    ) -> Path:
        """Write the settlement report file and return its path."""
        return csv_report.write_report(
            directory,
            csv_report.settlement_report_filename(matrix),
            self.serialize_settlement_report(matrix),
        )

    def close(self) -> None:
        self._session.close()
