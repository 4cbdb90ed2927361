"""
SaleService: validation, build, persist and apply.

Covers the clean rejections (nothing mutated), the committed path, and the
two ways a stock race between validation and apply is reported: a rollback
in atomic mode and PARTIAL_COMMIT in two-phase mode.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from sales_kernel.domain.dtos import ClientRef, ContainerRef, LineRequest
from sales_kernel.models.document import SALES_COLLECTION
from sales_kernel.models.stock import StockEntry
from sales_kernel.services.document_store import DocumentStore
from sales_kernel.services.rate_provider import (
    CONFIGURATION_COLLECTION,
    EXCHANGE_RATES_KEY,
    StoredRateProvider,
)
from sales_kernel.services.sale_service import (
    SaleService,
    SaleStatus,
    normalize_lines,
)
from sales_kernel.services.stock_ledger import StockLedger
from sales_kernel.exceptions import InvalidQuantityError


class RacingLedger(StockLedger):
    """Another device sells ``steal`` units right after validation reads the entry."""

    def __init__(self, session, steal: dict[str, int]):
        super().__init__(session)
        self._steal = dict(steal)

    def get_entry(self, container_id, item_id):
        entry = super().get_entry(container_id, item_id)
        if item_id in self._steal:
            super().decrement(container_id, item_id, self._steal.pop(item_id))
        return entry


class ExplodingStore(DocumentStore):
    def put(self, collection, key, value, merge=False):
        raise RuntimeError("storage unavailable")


def _sales(store):
    return store.list(SALES_COLLECTION)


class TestRejections:

    def test_insufficient_stock_rejected_and_stock_unchanged(
        self, sale_service, ledger, store, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 12)]
        )

        assert result.status == SaleStatus.STOCK_INSUFFICIENT
        assert not result.is_success
        assert result.item_id == "X"
        assert result.available == 10
        assert result.requested == 12
        assert result.stage == "validation"
        assert result.sale is None
        assert ledger.get_available("C1", "X") == 10
        assert _sales(store) == []

    def test_all_zero_quantities_is_empty_sale(
        self, sale_service, ledger, store, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 0), LineRequest("Y", 0)]
        )

        assert result.status == SaleStatus.EMPTY_SALE
        assert result.error_code == "EMPTY_SALE"
        assert ledger.get_available("C1", "X") == 10
        assert ledger.get_available("C1", "Y") == 5
        assert _sales(store) == []

    def test_no_lines_is_empty_sale(self, sale_service, operator, client_a, stocked_c1):
        result = sale_service.commit_sale(operator, client_a, stocked_c1, [])
        assert result.status == SaleStatus.EMPTY_SALE

    def test_negative_quantity_rejected(
        self, sale_service, ledger, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 2), LineRequest("Y", -1)]
        )

        assert result.status == SaleStatus.INVALID_QUANTITY
        assert result.item_id == "Y"
        assert ledger.get_available("C1", "X") == 10

    @pytest.mark.parametrize("client", [None, ClientRef("")])
    def test_missing_client(self, sale_service, operator, stocked_c1, client):
        result = sale_service.commit_sale(operator, client, stocked_c1, [LineRequest("X", 1)])
        assert result.status == SaleStatus.MISSING_CLIENT

    @pytest.mark.parametrize("container", [None, ContainerRef("")])
    def test_missing_container(self, sale_service, operator, client_a, stocked_c1, container):
        result = sale_service.commit_sale(operator, client_a, container, [LineRequest("X", 1)])
        assert result.status == SaleStatus.MISSING_CONTAINER

    def test_unprovisioned_item(self, sale_service, ledger, operator, client_a, stocked_c1):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 1), LineRequest("nope", 1)]
        )

        assert result.status == SaleStatus.STOCK_ENTRY_NOT_FOUND
        assert result.item_id == "nope"
        assert ledger.get_available("C1", "X") == 10


class TestCommit:

    def test_sequential_sales_drain_stock(
        self, sale_service, ledger, operator, client_a, client_b, stocked_c1
    ):
        first = sale_service.commit_sale(operator, client_a, stocked_c1, [LineRequest("X", 4)])
        second = sale_service.commit_sale(operator, client_b, stocked_c1, [LineRequest("X", 5)])

        assert first.is_success
        assert second.is_success
        assert ledger.get_available("C1", "X") == 1

    def test_committed_sale_is_priced_and_persisted(
        self, sale_service, store, operator, client_a, stocked_c1, deterministic_clock, rate_snapshot
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 4), LineRequest("Y", 2)]
        )

        sale = result.sale
        assert result.status == SaleStatus.COMMITTED
        assert result.sale_id == sale.sale_id
        assert [line.item_id for line in sale.lines] == ["X", "Y"]
        assert sale.lines[0].unit_price == Decimal("2.50")
        assert sale.total == Decimal("18.50")
        assert sale.recorded_at == deterministic_clock.now()
        assert sale.rates == rate_snapshot
        assert sale.operator_id == "op-1"

        body = store.get(SALES_COLLECTION, sale.sale_id)
        assert body is not None
        assert body["total"] == "18.5000"
        assert [o.applied for o in result.line_outcomes] == [True, True]
        assert [o.available for o in result.line_outcomes] == [6, 3]

    def test_duplicate_lines_are_summed(
        self, sale_service, ledger, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 2), LineRequest("X", 3)]
        )

        assert len(result.sale.lines) == 1
        assert result.sale.lines[0].quantity == 5
        assert ledger.get_available("C1", "X") == 5

    def test_duplicate_lines_validated_on_their_sum(
        self, sale_service, ledger, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 6), LineRequest("X", 6)]
        )

        assert result.status == SaleStatus.STOCK_INSUFFICIENT
        assert result.requested == 12
        assert ledger.get_available("C1", "X") == 10

    def test_mapping_input(self, sale_service, ledger, operator, client_a, stocked_c1):
        result = sale_service.commit_sale(operator, client_a, stocked_c1, {"X": 1, "Y": 0})

        assert result.is_success
        assert [line.item_id for line in result.sale.lines] == ["X"]

    def test_price_change_after_sale_does_not_alter_sale(
        self, session, sale_service, store, operator, client_a, stocked_c1
    ):
        result = sale_service.commit_sale(operator, client_a, stocked_c1, [LineRequest("X", 2)])
        session.execute(
            update(StockEntry)
            .where(StockEntry.item_id == "X")
            .values(unit_price=Decimal("9.99"))
        )
        session.commit()

        body = store.get(SALES_COLLECTION, result.sale_id)
        assert body["lines"][0]["unit_price"] == "2.5000"
        assert body["total"] == "5.0000"

    def test_completion_is_logged(
        self, sale_service, operator, client_a, stocked_c1, captured_logs
    ):
        result = sale_service.commit_sale(operator, client_a, stocked_c1, [LineRequest("X", 1)])

        completed = [r for r in captured_logs() if r["message"] == "sale_commit_completed"]
        assert completed
        assert completed[-1]["status"] == "committed"
        assert completed[-1]["sale_id"] == result.sale_id
        assert completed[-1]["operator_id"] == "op-1"

    def test_bad_stored_rates_do_not_abort_sale(
        self, session, store, deterministic_clock, operator, client_a, stocked_c1
    ):
        store.put(CONFIGURATION_COLLECTION, EXCHANGE_RATES_KEY, {"rates": {"VES": "0"}})
        session.commit()
        service = SaleService(
            session, StoredRateProvider(session, "USD"), clock=deterministic_clock
        )

        result = service.commit_sale(operator, client_a, stocked_c1, [LineRequest("X", 1)])

        assert result.status == SaleStatus.COMMITTED
        assert result.sale.rates.rates == ()


class TestApplyRace:

    def test_atomic_mode_rolls_back_whole_sale(
        self, session, rate_provider, deterministic_clock, store, operator, client_a, stocked_c1
    ):
        ledger = RacingLedger(session, steal={"X": 5})
        service = SaleService(session, rate_provider, clock=deterministic_clock, ledger=ledger)

        result = service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("Y", 2), LineRequest("X", 8)]
        )

        assert result.status == SaleStatus.STOCK_INSUFFICIENT
        assert result.stage == "apply"
        assert result.available == 5
        assert result.requested == 8
        assert result.sale is None
        assert _sales(store) == []
        # The rollback also undid the Y decrement applied before X was refused.
        assert ledger.get_available("C1", "Y") == 5

    def test_two_phase_mode_reports_partial_commit(
        self, session, rate_provider, deterministic_clock, store, operator, client_a, stocked_c1
    ):
        ledger = RacingLedger(session, steal={"X": 5})
        service = SaleService(
            session,
            rate_provider,
            clock=deterministic_clock,
            atomic_commit=False,
            ledger=ledger,
        )

        result = service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 8), LineRequest("Y", 2)]
        )

        assert result.status == SaleStatus.PARTIAL_COMMIT
        assert result.is_partial
        assert not result.is_success
        assert result.sale is not None
        assert store.get(SALES_COLLECTION, result.sale_id) is not None

        failed = result.failed_lines
        assert [o.item_id for o in failed] == ["X"]
        assert failed[0].code == "STOCK_INSUFFICIENT"
        assert failed[0].available == 5
        assert ledger.get_available("C1", "X") == 5
        assert ledger.get_available("C1", "Y") == 3

    def test_two_phase_mode_without_race_commits(
        self, two_phase_sale_service, ledger, operator, client_a, stocked_c1
    ):
        result = two_phase_sale_service.commit_sale(
            operator, client_a, stocked_c1, [LineRequest("X", 3)]
        )

        assert result.status == SaleStatus.COMMITTED
        assert ledger.get_available("C1", "X") == 7


class TestUnexpectedFailure:

    def test_unexpected_error_rolls_back_and_propagates(
        self, session, rate_provider, deterministic_clock, ledger, operator, client_a, stocked_c1,
        captured_logs,
    ):
        service = SaleService(
            session,
            rate_provider,
            clock=deterministic_clock,
            store=ExplodingStore(session),
        )

        with pytest.raises(RuntimeError):
            service.commit_sale(operator, client_a, stocked_c1, [LineRequest("X", 1)])

        assert ledger.get_available("C1", "X") == 10
        assert any(r["message"] == "sale_commit_failed" for r in captured_logs())


class TestNormalizeLines:

    def test_zero_lines_dropped_and_duplicates_summed(self):
        assert normalize_lines([("A", 1), ("B", 0), ("A", 2)]) == {"A": 3}

    @pytest.mark.parametrize("quantity", [-1, 1.5, "2", None])
    def test_invalid_quantities(self, quantity):
        with pytest.raises(InvalidQuantityError):
            normalize_lines([("A", quantity)])
