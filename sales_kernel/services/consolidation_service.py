"""
ConsolidationService -- the destructive daily close.

Responsibility:
    Aggregates one operator's sales for one local calendar day into the
    day's SettlementMatrix, persists it, and then retires (deletes) the
    consolidated sales.

    Sequence:
      1. Window: [00:00:00.000, 23:59:59.999] of ``day`` in the configured
         timezone, scoped to the caller's operator id.
      2. Fetch the sales in the window.  None -> NO_SALES_TO_CLOSE, and
         nothing is written or deleted.
      3. Aggregate the sales the existing settlement has not absorbed yet.
      4. Merge by sum into the existing settlement (or create it) and
         commit the settlement.
      5. Only then delete every fetched sale, each in its own commit.

Architecture position:
    Kernel > Services -- owns the transaction boundary.

Invariants enforced:
    - Settlement before retirement: no sale is deleted until the settlement
      write is committed.  This ordering is never reversed, so a crash
      leaves sales un-deleted (re-closable) and never deleted without a
      settlement.
    - Merge by sum: a second close for the same (day, operator) adds to
      the stored quantities, never overwrites them.
    - Absorbed sales are not summed twice: a re-run after a partial
      retirement failure only retires what is left.
    - Failures are returned as SettlementResult, never raised.  Each
      failure is reported once; there is no automatic retry.

Failure modes:
    - SETTLEMENT_PERSIST_FAILED: the settlement write failed; nothing was
      deleted.
    - RETIREMENT_INCOMPLETE: the settlement is durable, but the listed
      sales could not be deleted.  Re-running close_day retires them.
    - Unexpected errors during the read phase roll back, are logged and
      propagate.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sales_kernel.domain.clock import Clock, SystemClock
from sales_kernel.domain.dtos import OperatorContext, Sale
from sales_kernel.domain.settlement import (
    SETTLEMENT_COLLECTION,
    SettlementMatrix,
    aggregate_sales,
    day_window,
    merge_settlement,
    settlement_key,
)
from sales_kernel.exceptions import (
    RetirementError,
    SalesKernelError,
    SettlementPersistError,
)
from sales_kernel.logging_config import LogContext, get_logger
from sales_kernel.models.document import SALES_COLLECTION
from sales_kernel.services.document_store import DocumentStore, Filter

logger = get_logger("services.consolidation")


class SettlementStatus(str, Enum):
    """Status of a close_day call."""

    CLOSED = "closed"
    NO_SALES_TO_CLOSE = "no_sales_to_close"
    SETTLEMENT_PERSIST_FAILED = "settlement_persist_failed"
    RETIREMENT_INCOMPLETE = "retirement_incomplete"


@dataclass(frozen=True)
class SettlementResult:
    """Result of a close_day call."""

    status: SettlementStatus
    day: date
    operator_id: str
    matrix: SettlementMatrix | None = None
    sales_consolidated: int = 0
    sales_retired: int = 0
    unretired_sale_ids: tuple[str, ...] = ()
    error_code: str | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == SettlementStatus.CLOSED

    @property
    def settlement_key(self) -> str:
        return settlement_key(self.day, self.operator_id)


class ConsolidationService:
    """
    Closes an operator's trading day.

    Usage:
        service = ConsolidationService(session, clock=clock, timezone="America/Caracas")
        result = service.close_day(OperatorContext("op-1", "Ana"), date(2024, 1, 1))
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        timezone: str | tzinfo = "UTC",
        store: DocumentStore | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
        self._store = store or DocumentStore(session)

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    def today(self) -> date:
        """Current local calendar day."""
        return self._clock.now().astimezone(self._tz).date()

    def window(self, day: date) -> tuple[datetime, datetime]:
        return day_window(day, self._tz)

    def get_settlement(self, day: date, operator_id: str) -> SettlementMatrix | None:
        """Stored settlement of ``operator_id`` for ``day``, if any."""
        body = self._store.get(SETTLEMENT_COLLECTION, settlement_key(day, operator_id))
        if body is None:
            return None
        return SettlementMatrix.from_document(body)

    def list_settlements(self, operator_id: str) -> list[SettlementMatrix]:
        """All settlements of an operator, oldest close first."""
        rows = self._store.list(
            SETTLEMENT_COLLECTION,
            [Filter("operator_id", "==", operator_id)],
        )
        return [SettlementMatrix.from_document(body) for _, body in rows]

    def close_day(
        self,
        context: OperatorContext,
        day: date | None = None,
    ) -> SettlementResult:
        """
        Consolidate and retire the sales of ``context.operator_id`` on ``day``.

        ``day`` defaults to today in the configured timezone.

        Raises:
            Exception: Re-raises any unexpected exception after rollback.
        """
        day = day or self.today()
        key = settlement_key(day, context.operator_id)

        with LogContext.bind(
            correlation_id=context.correlation_id or key,
            operator_id=context.operator_id,
            settlement_key=key,
        ):
            logger.info("close_day_started", extra={"day": day})
            t0 = time.monotonic()

            try:
                result = self._do_close(context, day, key)
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._session.rollback()
                logger.error(
                    "close_day_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "close_day_completed",
                extra={
                    "status": result.status.value,
                    "duration_ms": duration_ms,
                    "sales_consolidated": result.sales_consolidated,
                    "sales_retired": result.sales_retired,
                    "unretired": len(result.unretired_sale_ids),
                },
            )
            return result

    def _fetch_sales(self, operator_id: str, day: date) -> list[Sale]:
        start, end = self.window(day)
        rows = self._store.list(
            SALES_COLLECTION,
            [
                Filter("operator_id", "==", operator_id),
                Filter("recorded_at", ">=", start),
                Filter("recorded_at", "<=", end),
            ],
        )
        return [Sale.from_document(body) for _, body in rows]

    def _do_close(
        self,
        context: OperatorContext,
        day: date,
        key: str,
    ) -> SettlementResult:
        sales = self._fetch_sales(context.operator_id, day)
        if not sales:
            self._session.rollback()
            logger.info("close_day_no_sales")
            return SettlementResult(
                status=SettlementStatus.NO_SALES_TO_CLOSE,
                day=day,
                operator_id=context.operator_id,
                message=f"No sales to close for {day.isoformat()}",
            )

        existing = self.get_settlement(day, context.operator_id)
        absorbed = existing.sale_ids if existing is not None else frozenset()
        fresh = [sale for sale in sales if sale.sale_id not in absorbed]

        if fresh:
            matrix = merge_settlement(
                existing,
                aggregate_sales(fresh),
                key=key,
                day=day,
                operator_id=context.operator_id,
                operator_name=context.display_name,
                closed_at=self._clock.now(),
            )
            failure = self._persist(matrix)
            if failure is not None:
                return SettlementResult(
                    status=SettlementStatus.SETTLEMENT_PERSIST_FAILED,
                    day=day,
                    operator_id=context.operator_id,
                    error_code=failure.code,
                    message=str(failure),
                )
        else:
            # Everything fetched was absorbed by an earlier close whose
            # retirement did not finish.
            matrix = existing
            logger.info(
                "close_day_resuming_retirement",
                extra={"pending": len(sales)},
            )

        # INVARIANT: settlement committed above before any delete below
        retired, unretired = self._retire(sales)

        if unretired:
            error = RetirementError(key, unretired)
            return SettlementResult(
                status=SettlementStatus.RETIREMENT_INCOMPLETE,
                day=day,
                operator_id=context.operator_id,
                matrix=matrix,
                sales_consolidated=len(fresh),
                sales_retired=retired,
                unretired_sale_ids=tuple(unretired),
                error_code=error.code,
                message=str(error),
            )

        return SettlementResult(
            status=SettlementStatus.CLOSED,
            day=day,
            operator_id=context.operator_id,
            matrix=matrix,
            sales_consolidated=len(fresh),
            sales_retired=retired,
        )

    def _persist(self, matrix: SettlementMatrix) -> SettlementPersistError | None:
        try:
            self._store.put(SETTLEMENT_COLLECTION, matrix.settlement_key, matrix.to_document())
            self._session.commit()
        except (SQLAlchemyError, SalesKernelError) as exc:
            self._session.rollback()
            error = SettlementPersistError(matrix.settlement_key, str(exc))
            logger.error(
                "settlement_persist_failed",
                extra={"error_code": error.code, "reason": str(exc)},
            )
            return error

        logger.info(
            "settlement_persisted",
            extra={
                "clients": len(matrix.clients),
                "items": len(matrix.item_metadata),
                "close_count": matrix.close_count,
            },
        )
        return None

    def _retire(self, sales: list[Sale]) -> tuple[int, list[str]]:
        retired = 0
        unretired: list[str] = []
        for sale in sales:
            try:
                self._store.delete(SALES_COLLECTION, sale.sale_id)
                self._session.commit()
            except (SQLAlchemyError, SalesKernelError) as exc:
                self._session.rollback()
                unretired.append(sale.sale_id)
                logger.error(
                    "sale_retirement_failed",
                    extra={"sale_id": sale.sale_id, "reason": str(exc)},
                )
                continue
            retired += 1
        return retired, unretired
