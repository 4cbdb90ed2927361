"""
Pytest fixtures for the route sales kernel test suite.

Provides:
- An in-memory SQLite database, recreated for every test
- Sessions, ledger, store, rate provider and service fixtures
- A deterministic clock
- Structured log capture
- Factories for clients, containers and catalog items

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from sales_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from sales_kernel.domain.clock import DeterministicClock
from sales_kernel.domain.dtos import (
    CatalogItem,
    ClientRef,
    ContainerRef,
    OperatorContext,
    RateSnapshot,
)
from sales_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from sales_kernel.services.consolidation_service import ConsolidationService
from sales_kernel.services.document_store import DocumentStore
from sales_kernel.services.rate_provider import StaticRateProvider
from sales_kernel.services.sale_service import SaleService
from sales_kernel.services.stock_ledger import StockLedger

# Sales in the default scenarios happen at noon UTC on this day
TEST_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture sales_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sale_service):
            sale_service.commit_sale(...)
            logs = captured_logs()
            assert any(r["message"] == "sale_commit_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("sales_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture
def engine():
    engine = init_engine_from_url(get_database_url())
    create_tables()
    yield engine
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    session = get_session()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Clock fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(TEST_NOW)


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def ledger(session) -> StockLedger:
    return StockLedger(session)


@pytest.fixture
def store(session) -> DocumentStore:
    return DocumentStore(session)


@pytest.fixture
def rate_snapshot() -> RateSnapshot:
    return RateSnapshot(
        base_currency="USD",
        rates=(("COP", Decimal("3900")), ("VES", Decimal("36.5"))),
    )


@pytest.fixture
def rate_provider(rate_snapshot) -> StaticRateProvider:
    return StaticRateProvider(rate_snapshot)


@pytest.fixture
def sale_service(session, rate_provider, deterministic_clock) -> SaleService:
    return SaleService(session, rate_provider, clock=deterministic_clock)


@pytest.fixture
def two_phase_sale_service(session, rate_provider, deterministic_clock) -> SaleService:
    return SaleService(
        session,
        rate_provider,
        clock=deterministic_clock,
        atomic_commit=False,
    )


@pytest.fixture
def consolidation_service(session, deterministic_clock) -> ConsolidationService:
    return ConsolidationService(session, clock=deterministic_clock, timezone="UTC")


# =============================================================================
# Reference data
# =============================================================================


@pytest.fixture
def operator() -> OperatorContext:
    return OperatorContext(operator_id="op-1", operator_name="Ana Rivas")


@pytest.fixture
def other_operator() -> OperatorContext:
    return OperatorContext(operator_id="op-2", operator_name="Luis Mora")


@pytest.fixture
def client_a() -> ClientRef:
    return ClientRef(
        client_id="client-a",
        name="Abasto Central",
        tax_id="J-12345678-9",
        zone="Norte",
        sector="Retail",
    )


@pytest.fixture
def client_b() -> ClientRef:
    return ClientRef(
        client_id="client-b",
        name="Bodega El Sol",
        tax_id="J-87654321-0",
        zone="Sur",
        sector="Retail",
    )


@pytest.fixture
def container_c1() -> ContainerRef:
    return ContainerRef(container_id="C1", make="Ford", model="Cargo 815", plate="AB-123")


@pytest.fixture
def item_x() -> CatalogItem:
    return CatalogItem(
        item_id="X",
        name="Harina",
        presentation="1kg",
        category="Food",
        segment="Staples",
        unit_price=Decimal("2.50"),
    )


@pytest.fixture
def item_y() -> CatalogItem:
    return CatalogItem(
        item_id="Y",
        name="Aceite",
        presentation="1L",
        category="Food",
        segment="Staples",
        unit_price=Decimal("4.25"),
    )


@pytest.fixture
def stocked_c1(session, ledger, container_c1, item_x, item_y):
    """Container C1 with 10 units of X and 5 units of Y, committed."""
    ledger.provision(container_c1.container_id, item_x, 10)
    ledger.provision(container_c1.container_id, item_y, 5)
    session.commit()
    return container_c1
