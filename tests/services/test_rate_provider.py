"""Exchange-rate providers."""

from decimal import Decimal

import pytest

from sales_kernel.domain.dtos import RateSnapshot
from sales_kernel.exceptions import InvalidExchangeRateError
from sales_kernel.services.rate_provider import (
    CONFIGURATION_COLLECTION,
    EXCHANGE_RATES_KEY,
    StaticRateProvider,
    StoredRateProvider,
)


def test_static_provider_returns_its_snapshot(rate_snapshot):
    assert StaticRateProvider(rate_snapshot).current() is rate_snapshot


class TestStoredRateProvider:

    def test_missing_document_falls_back_to_defaults(self, session, captured_logs):
        provider = StoredRateProvider(session, "USD", {"VES": "1", "COP": 1})

        snapshot = provider.current()

        assert snapshot == RateSnapshot("USD", (("COP", Decimal("1")), ("VES", Decimal("1"))))
        assert any(r["message"] == "exchange_rates_defaulted" for r in captured_logs())

    def test_no_defaults_means_base_only(self, session):
        snapshot = StoredRateProvider(session, "USD").current()
        assert snapshot.rates == ()
        assert snapshot.rate_for("USD") == Decimal("1")

    def test_publish_then_read(self, session, store):
        provider = StoredRateProvider(session, "USD")

        provider.publish({"VES": "36.5", "COP": Decimal("3900")})

        assert provider.current().rate_for("VES") == Decimal("36.5")
        assert store.get(CONFIGURATION_COLLECTION, EXCHANGE_RATES_KEY) == {
            "base_currency": "USD",
            "rates": {"COP": "3900", "VES": "36.5"},
        }

    @pytest.mark.parametrize("rate", ["0", "-1", "abc", None])
    def test_invalid_rate_rejected(self, session, rate):
        provider = StoredRateProvider(session, "USD")
        with pytest.raises(InvalidExchangeRateError) as exc_info:
            provider.publish({"VES": rate})
        assert exc_info.value.currency == "VES"

    def test_invalid_default_rejected(self, session):
        with pytest.raises(InvalidExchangeRateError):
            StoredRateProvider(session, "USD", {"VES": "0"})

    @pytest.mark.parametrize("rate", ["0", "-3", "abc"])
    def test_malformed_document_falls_back_to_defaults(self, session, store, captured_logs, rate):
        store.put(CONFIGURATION_COLLECTION, EXCHANGE_RATES_KEY, {"rates": {"VES": rate}})
        provider = StoredRateProvider(session, "USD", {"VES": "1"})

        snapshot = provider.current()

        assert snapshot == RateSnapshot("USD", (("VES", Decimal("1")),))
        warnings = [r for r in captured_logs() if r["message"] == "exchange_rates_invalid_defaulted"]
        assert warnings[-1]["currency"] == "VES"
