"""
Exchange-rate snapshot providers.

Responsibility:
    Supply the base -> secondary currency multipliers that a sale stores
    as its audit snapshot.  Rates are display-only; prices stay in the
    base currency.

Architecture position:
    Kernel > Services -- flush-only building block (see BaseService).

Invariants enforced:
    - Every published multiplier is a finite Decimal > 0.
    - ``current()`` never fails for a missing or malformed rates document:
      it falls back to the configured defaults.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal

from sqlalchemy.orm import Session

from sales_kernel.db.types import money_from_value
from sales_kernel.domain.dtos import RateSnapshot
from sales_kernel.exceptions import InvalidExchangeRateError
from sales_kernel.logging_config import get_logger
from sales_kernel.services.document_store import DocumentStore

logger = get_logger("services.rate_provider")

CONFIGURATION_COLLECTION = "configuration"
EXCHANGE_RATES_KEY = "exchange_rates"


def _validated_rates(rates: Mapping[str, object]) -> tuple[tuple[str, Decimal], ...]:
    validated = []
    for currency, raw in rates.items():
        try:
            rate = money_from_value(raw)
        except ValueError as exc:
            raise InvalidExchangeRateError(currency, raw) from exc
        if rate <= 0:
            raise InvalidExchangeRateError(currency, raw)
        validated.append((currency, rate))
    return tuple(sorted(validated))


class RateProvider(ABC):
    """Source of the rate snapshot attached to each sale."""

    @abstractmethod
    def current(self) -> RateSnapshot:
        ...


class StaticRateProvider(RateProvider):
    """Fixed snapshot."""

    def __init__(self, snapshot: RateSnapshot):
        self._snapshot = snapshot

    def current(self) -> RateSnapshot:
        return self._snapshot


class StoredRateProvider(RateProvider):
    """
    Rates kept in the ``configuration/exchange_rates`` document.

    The document body is ``{"base_currency": ..., "rates": {code: "1.5"}}``.
    When it is missing, ``default_rates`` are used (1:1 unless configured).
    """

    def __init__(
        self,
        session: Session,
        base_currency: str,
        default_rates: Mapping[str, object] | None = None,
    ):
        self._store = DocumentStore(session)
        self._base_currency = base_currency
        self._defaults = _validated_rates(default_rates or {})

    def current(self) -> RateSnapshot:
        body = self._store.get(CONFIGURATION_COLLECTION, EXCHANGE_RATES_KEY)
        if body is None:
            logger.info(
                "exchange_rates_defaulted",
                extra={"base_currency": self._base_currency},
            )
            return RateSnapshot(base_currency=self._base_currency, rates=self._defaults)
        try:
            rates = _validated_rates(body.get("rates") or {})
        except InvalidExchangeRateError as exc:
            logger.warning(
                "exchange_rates_invalid_defaulted",
                extra={"currency": exc.currency, "rate": str(exc.rate)},
            )
            rates = self._defaults
        return RateSnapshot(
            base_currency=body.get("base_currency", self._base_currency),
            rates=rates,
        )

    def publish(self, rates: Mapping[str, object]) -> RateSnapshot:
        """
        Replace the stored multipliers.

        Raises:
            InvalidExchangeRateError: a multiplier is not a positive number.
        """
        snapshot = RateSnapshot(
            base_currency=self._base_currency,
            rates=_validated_rates(rates),
        )
        self._store.put(CONFIGURATION_COLLECTION, EXCHANGE_RATES_KEY, snapshot.to_dict())
        logger.info(
            "exchange_rates_published",
            extra={"rates": {code: str(rate) for code, rate in snapshot.rates}},
        )
        return snapshot
