"""
SaleService -- validate and commit a point-of-sale transaction.

Responsibility:
    Turns a (client, container, requested lines) selection into a
    committed Sale and drives the stock decrements for its lines.

    Pipeline:
      1. Input validation: client, container, quantities (sum duplicates,
         drop zero lines, reject negatives and non-integers).
      2. Validation pass: every line is checked against the ledger's
         current quantity.  Nothing is mutated.
      3. Build pass: lines are priced from the stock entry's unit price,
         captured once.
      4. Persist the Sale with its exchange-rate snapshot.
      5. Apply pass: one conditional decrement per line.

Architecture position:
    Kernel > Services -- owns the transaction boundary (commits and rolls
    back its session), like the other caller-facing services.

Invariants enforced:
    - Validation failures never mutate anything.
    - Atomic mode (default): steps 4-5 are one transaction.  A decrement
      refused at apply time rolls back the sale and every applied
      decrement; the result is a clean STOCK_INSUFFICIENT rejection.
    - Two-phase mode: the Sale is committed first, each decrement is
      committed on its own, and any refused line yields PARTIAL_COMMIT.
      A partial commit is never reported as success.
    - Domain errors are returned as SaleResult, never raised.

Failure modes:
    - Unexpected (non-domain) errors: the session is rolled back, the
      failure is logged, and the exception propagates.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

from sqlalchemy.orm import Session

from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.dtos import (
    ClientRef,
    ContainerRef,
    LineRequest,
    OperatorContext,
    Sale,
    SaleLineItem,
)
from sales_kernel.exceptions import (
    EmptySaleError,
    InvalidQuantityError,
    MissingClientError,
    MissingContainerError,
    SalesKernelError,
    StockError,
    StockInsufficientError,
)
from sales_kernel.logging_config import LogContext, get_logger
from sales_kernel.models.document import SALES_COLLECTION
from sales_kernel.models.stock import StockEntry
from sales_kernel.services.document_store import DocumentStore
from sales_kernel.services.rate_provider import RateProvider
from sales_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.sale")


class SaleStatus(str, Enum):
    """Status of a commit_sale call."""

    COMMITTED = "committed"
    PARTIAL_COMMIT = "partial_commit"
    EMPTY_SALE = "empty_sale"
    INVALID_QUANTITY = "invalid_quantity"
    MISSING_CLIENT = "missing_client"
    MISSING_CONTAINER = "missing_container"
    STOCK_ENTRY_NOT_FOUND = "stock_entry_not_found"
    STOCK_INSUFFICIENT = "stock_insufficient"


_STATUS_BY_CODE = {
    "EMPTY_SALE": SaleStatus.EMPTY_SALE,
    "INVALID_QUANTITY": SaleStatus.INVALID_QUANTITY,
    "MISSING_CLIENT": SaleStatus.MISSING_CLIENT,
    "MISSING_CONTAINER": SaleStatus.MISSING_CONTAINER,
    "STOCK_ENTRY_NOT_FOUND": SaleStatus.STOCK_ENTRY_NOT_FOUND,
    "STOCK_INSUFFICIENT": SaleStatus.STOCK_INSUFFICIENT,
}


@dataclass(frozen=True)
class LineDecrementOutcome:
    """Per-line result of the apply pass."""

    item_id: str
    requested: int
    applied: bool
    available: int | None = None
    code: str | None = None


@dataclass(frozen=True)
class SaleResult:
    """Result of a commit_sale call."""

    status: SaleStatus
    sale: Sale | None = None
    line_outcomes: tuple[LineDecrementOutcome, ...] = ()
    error_code: str | None = None
    message: str | None = None
    item_id: str | None = None
    available: int | None = None
    requested: int | None = None
    stage: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == SaleStatus.COMMITTED

    @property
    def is_partial(self) -> bool:
        return self.status == SaleStatus.PARTIAL_COMMIT

    @property
    def sale_id(self) -> str | None:
        return self.sale.sale_id if self.sale is not None else None

    @property
    def failed_lines(self) -> tuple[LineDecrementOutcome, ...]:
        return tuple(outcome for outcome in self.line_outcomes if not outcome.applied)

    @classmethod
    def rejected(cls, exc: SalesKernelError, stage: str) -> SaleResult:
        """Clean rejection: nothing was persisted."""
        return cls(
            status=_STATUS_BY_CODE.get(exc.code, SaleStatus.INVALID_QUANTITY),
            error_code=exc.code,
            message=str(exc),
            item_id=getattr(exc, "item_id", None),
            available=getattr(exc, "available", None),
            requested=getattr(exc, "requested", None),
            stage=stage,
        )


LineInput = Mapping[str, int] | Iterable[LineRequest | tuple[str, int]]


def normalize_lines(lines: LineInput) -> dict[str, int]:
    """
    Collapse requested lines into ``{item_id: quantity}``.

    Duplicate items are summed and zero quantities dropped, preserving the
    order in which items first appear.

    Raises:
        InvalidQuantityError: a quantity is negative or not an int.
    """
    if isinstance(lines, Mapping):
        pairs: Iterable[tuple[str, object]] = lines.items()
    else:
        pairs = (
            (line.item_id, line.quantity) if isinstance(line, LineRequest) else line
            for line in lines
        )

    requested: dict[str, int] = {}
    for item_id, quantity in pairs:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidQuantityError(item_id, quantity)
        if quantity == 0:
            continue
        requested[item_id] = requested.get(item_id, 0) + quantity
    return requested


class SaleService:
    """
    Commits sales against the stock ledger.

    Usage:
        service = SaleService(session, rate_provider, clock=clock)
        result = service.commit_sale(
            OperatorContext("op-1", "Ana"),
            client,
            container,
            [LineRequest("item-x", 4)],
        )
        if result.is_success:
            ...
    """

    def __init__(
        self,
        session: Session,
        rate_provider: RateProvider,
        clock: Clock | None = None,
        atomic_commit: bool = True,
        ledger: StockLedger | None = None,
        store: DocumentStore | None = None,
    ):
        self._session = session
        self._rates = rate_provider
        self._clock = clock or SystemClock()
        self._atomic_commit = atomic_commit
        self._ledger = ledger or StockLedger(session)
        self._store = store or DocumentStore(session)

    @property
    def atomic_commit(self) -> bool:
        return self._atomic_commit

    def commit_sale(
        self,
        context: OperatorContext,
        client: ClientRef | None,
        container: ContainerRef | None,
        lines: LineInput,
    ) -> SaleResult:
        """
        Validate and commit one sale.

        Postconditions:
            - COMMITTED: the sale is durable and every line was decremented.
            - PARTIAL_COMMIT (two-phase mode only): the sale is durable and
              ``failed_lines`` lists the decrements that were refused.
            - Any other status: nothing was persisted or decremented.

        Raises:
            Exception: Re-raises any unexpected exception after rollback.
        """
        sale_id = str(uuid4())
        container_id = container.container_id if container is not None else None

        with LogContext.bind(
            correlation_id=context.correlation_id or sale_id,
            operator_id=context.operator_id,
            container_id=container_id,
            sale_id=sale_id,
        ):
            logger.info(
                "sale_commit_started",
                extra={
                    "client_id": client.client_id if client is not None else None,
                    "atomic_commit": self._atomic_commit,
                },
            )
            t0 = time.monotonic()

            try:
                result = self._do_commit(sale_id, context, client, container, lines)
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._session.rollback()
                logger.error(
                    "sale_commit_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            log = logger.info if result.is_success else logger.warning
            log(
                "sale_commit_completed",
                extra={
                    "status": result.status.value,
                    "duration_ms": duration_ms,
                    "line_count": len(result.sale.lines) if result.sale else 0,
                    "total": str(result.sale.total) if result.sale else None,
                    "error_code": result.error_code,
                },
            )
            return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _do_commit(
        self,
        sale_id: str,
        context: OperatorContext,
        client: ClientRef | None,
        container: ContainerRef | None,
        lines: LineInput,
    ) -> SaleResult:
        try:
            requested, entries = self._validate(client, container, lines)
        except SalesKernelError as exc:
            self._session.rollback()
            logger.info(
                "sale_rejected",
                extra={"error_code": exc.code, "stage": "validation"},
            )
            return SaleResult.rejected(exc, stage="validation")

        sale = self._build(sale_id, context, client, container, requested, entries)

        if self._atomic_commit:
            return self._apply_atomic(sale)
        return self._apply_two_phase(sale)

    def _validate(
        self,
        client: ClientRef | None,
        container: ContainerRef | None,
        lines: LineInput,
    ) -> tuple[dict[str, int], dict[str, StockEntry]]:
        if client is None or not client.client_id:
            raise MissingClientError()
        if container is None or not container.container_id:
            raise MissingContainerError()

        requested = normalize_lines(lines)
        if not requested:
            raise EmptySaleError(container.container_id)

        entries: dict[str, StockEntry] = {}
        for item_id, quantity in requested.items():
            entry = self._ledger.get_entry(container.container_id, item_id)
            if quantity > entry.quantity:
                raise StockInsufficientError(
                    container.container_id,
                    item_id,
                    available=entry.quantity,
                    requested=quantity,
                    item_name=entry.name,
                )
            entries[item_id] = entry
        return requested, entries

    def _build(
        self,
        sale_id: str,
        context: OperatorContext,
        client: ClientRef,
        container: ContainerRef,
        requested: dict[str, int],
        entries: dict[str, StockEntry],
    ) -> Sale:
        sale_lines = tuple(
            SaleLineItem(
                item_id=item_id,
                name=entries[item_id].name,
                presentation=entries[item_id].presentation,
                category=entries[item_id].category,
                segment=entries[item_id].segment,
                unit_price=entries[item_id].unit_price,
                quantity=quantity,
            )
            for item_id, quantity in requested.items()
        )
        return Sale(
            sale_id=sale_id,
            recorded_at=self._clock.now(),
            operator_id=context.operator_id,
            operator_name=context.operator_name,
            client=client,
            container=container,
            lines=sale_lines,
            rates=self._rates.current(),
        )

    def _apply_atomic(self, sale: Sale) -> SaleResult:
        container_id = sale.container.container_id
        outcomes = []
        try:
            self._store.put(SALES_COLLECTION, sale.sale_id, sale.to_document())
            for line in sale.lines:
                applied = self._ledger.decrement(container_id, line.item_id, line.quantity)
                outcomes.append(
                    LineDecrementOutcome(
                        item_id=line.item_id,
                        requested=line.quantity,
                        applied=True,
                        available=applied.remaining,
                    )
                )
            self._session.commit()
        except StockError as exc:
            self._session.rollback()
            logger.warning(
                "sale_rolled_back",
                extra={"error_code": exc.code, "item_id": getattr(exc, "item_id", None)},
            )
            return SaleResult.rejected(exc, stage="apply")

        return SaleResult(
            status=SaleStatus.COMMITTED,
            sale=sale,
            line_outcomes=tuple(outcomes),
        )

    def _apply_two_phase(self, sale: Sale) -> SaleResult:
        container_id = sale.container.container_id
        self._store.put(SALES_COLLECTION, sale.sale_id, sale.to_document())
        self._session.commit()
        logger.info("sale_persisted", extra={"total": str(sale.total)})

        outcomes = []
        for line in sale.lines:
            try:
                applied = self._ledger.decrement(container_id, line.item_id, line.quantity)
                self._session.commit()
            except StockError as exc:
                self._session.rollback()
                outcomes.append(
                    LineDecrementOutcome(
                        item_id=line.item_id,
                        requested=line.quantity,
                        applied=False,
                        available=getattr(exc, "available", None),
                        code=exc.code,
                    )
                )
                continue
            outcomes.append(
                LineDecrementOutcome(
                    item_id=line.item_id,
                    requested=line.quantity,
                    applied=True,
                    available=applied.remaining,
                )
            )

        failed = [outcome for outcome in outcomes if not outcome.applied]
        if not failed:
            return SaleResult(
                status=SaleStatus.COMMITTED,
                sale=sale,
                line_outcomes=tuple(outcomes),
            )

        logger.error(
            "sale_partially_committed",
            extra={"failed_items": [outcome.item_id for outcome in failed]},
        )
        return SaleResult(
            status=SaleStatus.PARTIAL_COMMIT,
            sale=sale,
            line_outcomes=tuple(outcomes),
            error_code="PARTIAL_COMMIT",
            message=(
                f"Sale {sale.sale_id} recorded but {len(failed)} line(s) could not "
                "be decremented and need manual reconciliation"
            ),
        )
