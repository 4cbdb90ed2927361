"""
Typed Exception Hierarchy for the Route Sales Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A sale that is refused for lack of stock and a sale that was recorded but
could not fully decrement its container are very different situations for
the person standing at the counter.  Callers must be able to tell them
apart without parsing message strings, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, UI-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        ledger.decrement(container_id, item_id, 3)
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        ledger.decrement(container_id, item_id, 3)
    except StockInsufficientError as e:
        notify(e.item_id, e.available, e.requested)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SalesKernelError (base)
    |
    +-- SaleValidationError
    |   +-- EmptySaleError
    |   +-- InvalidQuantityError
    |   +-- MissingClientError
    |   +-- MissingContainerError
    |
    +-- StockError
    |   +-- StockEntryNotFoundError
    |   +-- StockEntryExistsError
    |   +-- StockInsufficientError
    |
    +-- SettlementError
    |   +-- SettlementPersistError
    |   +-- RetirementError
    |
    +-- DocumentStoreError
    |   +-- UnsupportedFilterError
    |   +-- DocumentBodyError
    |
    +-- ExchangeRateError
        +-- InvalidExchangeRateError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | EMPTY_SALE                  | No requested line has quantity > 0
                | INVALID_QUANTITY            | Quantity is negative, zero or not an int
                | MISSING_CLIENT              | Sale has no client reference
                | MISSING_CONTAINER           | Sale has no container reference
----------------|-----------------------------|-----------------------------------------
Stock           | STOCK_ENTRY_NOT_FOUND       | Item not provisioned in the container
                | STOCK_ENTRY_EXISTS          | Item provisioned twice in a container
                | STOCK_INSUFFICIENT          | Requested quantity exceeds availability
----------------|-----------------------------|-----------------------------------------
Settlement      | SETTLEMENT_PERSIST_FAILED   | Settlement write failed, nothing deleted
                | RETIREMENT_FAILED           | Settlement durable, some sales remain
----------------|-----------------------------|-----------------------------------------
Store           | UNSUPPORTED_FILTER          | Filter on a non-indexed field/operator
                | DOCUMENT_BODY_INVALID       | Stored body is not a JSON object
----------------|-----------------------------|-----------------------------------------
Exchange Rate   | INVALID_EXCHANGE_RATE       | Multiplier is zero, negative or invalid

===============================================================================
PROPAGATION
===============================================================================

Kernel services raise these exceptions.  The two caller-facing operations,
``SaleService.commit_sale`` and ``ConsolidationService.close_day``, convert
them into typed results (``SaleResult`` / ``SettlementResult``) so the UI
layer never receives a domain exception from those calls.
"""


class SalesKernelError(Exception):
    """
    Base exception for all route sales kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SALES_KERNEL_ERROR"


# Sale validation exceptions


class SaleValidationError(SalesKernelError):
    """Base exception for sale input errors.  Raised before any mutation."""

    code: str = "SALE_VALIDATION_ERROR"


class EmptySaleError(SaleValidationError):
    """No requested line carries a positive quantity."""

    code: str = "EMPTY_SALE"

    def __init__(self, container_id: str | None = None):
        self.container_id = container_id
        super().__init__("Sale has no line with a quantity greater than zero")


class InvalidQuantityError(SaleValidationError):
    """Quantity is not a positive integer where one is required."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, item_id: str, quantity: object):
        self.item_id = item_id
        self.quantity = quantity
        super().__init__(f"Invalid quantity {quantity!r} for item {item_id}")


class MissingClientError(SaleValidationError):
    """Sale was requested without a client."""

    code: str = "MISSING_CLIENT"

    def __init__(self):
        super().__init__("A client must be selected for the sale")


class MissingContainerError(SaleValidationError):
    """Sale was requested without a container to draw stock from."""

    code: str = "MISSING_CONTAINER"

    def __init__(self):
        super().__init__("A container must be selected for the sale")


# Stock ledger exceptions


class StockError(SalesKernelError):
    """Base exception for stock ledger errors."""

    code: str = "STOCK_ERROR"


class StockEntryNotFoundError(StockError):
    """Item is not provisioned in the given container."""

    code: str = "STOCK_ENTRY_NOT_FOUND"

    def __init__(self, container_id: str, item_id: str):
        self.container_id = container_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} is not provisioned in container {container_id}"
        )


class StockEntryExistsError(StockError):
    """Item is already provisioned in the given container."""

    code: str = "STOCK_ENTRY_EXISTS"

    def __init__(self, container_id: str, item_id: str):
        self.container_id = container_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} is already provisioned in container {container_id}"
        )


class StockInsufficientError(StockError):
    """
    Requested quantity exceeds what the container holds.

    Raised during validation (nothing mutated) and at write time when the
    conditional decrement refuses.  The ledger quantity is never changed
    when this is raised.
    """

    code: str = "STOCK_INSUFFICIENT"

    def __init__(
        self,
        container_id: str,
        item_id: str,
        available: int,
        requested: int,
        item_name: str | None = None,
    ):
        self.container_id = container_id
        self.item_id = item_id
        self.available = available
        self.requested = requested
        self.item_name = item_name
        label = f"{item_name} ({item_id})" if item_name else item_id
        super().__init__(
            f"Insufficient stock of {label} in container {container_id}: "
            f"available {available}, requested {requested}"
        )


# Settlement exceptions


class SettlementError(SalesKernelError):
    """Base exception for daily settlement errors."""

    code: str = "SETTLEMENT_ERROR"


class SettlementPersistError(SettlementError):
    """
    The settlement document could not be written.

    Raised before any sale is deleted; the close is fully recoverable.
    """

    code: str = "SETTLEMENT_PERSIST_FAILED"

    def __init__(self, settlement_key: str, reason: str):
        self.settlement_key = settlement_key
        self.reason = reason
        super().__init__(f"Could not persist settlement {settlement_key}: {reason}")


class RetirementError(SettlementError):
    """Settlement is durable but some consolidated sales were not deleted."""

    code: str = "RETIREMENT_FAILED"

    def __init__(self, settlement_key: str, sale_ids: list[str]):
        self.settlement_key = settlement_key
        self.sale_ids = sale_ids
        super().__init__(
            f"Settlement {settlement_key} persisted but {len(sale_ids)} "
            "sale(s) could not be retired"
        )


# Document store exceptions


class DocumentStoreError(SalesKernelError):
    """Base exception for document store errors."""

    code: str = "DOCUMENT_STORE_ERROR"


class UnsupportedFilterError(DocumentStoreError):
    """Query filter targets a field or operator the store does not index."""

    code: str = "UNSUPPORTED_FILTER"

    def __init__(self, field: str, op: str):
        self.field = field
        self.op = op
        super().__init__(f"Unsupported filter: {field} {op}")


class DocumentBodyError(DocumentStoreError):
    """Document body is not a JSON object."""

    code: str = "DOCUMENT_BODY_INVALID"

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"Document {collection}/{key} body must be a mapping")


# Exchange rate exceptions


class ExchangeRateError(SalesKernelError):
    """Base exception for exchange rate errors."""

    code: str = "EXCHANGE_RATE_ERROR"


class InvalidExchangeRateError(ExchangeRateError):
    """Multiplier is zero, negative, or not a number."""

    code: str = "INVALID_EXCHANGE_RATE"

    def __init__(self, currency: str, rate: object):
        self.currency = currency
        self.rate = rate
        super().__init__(f"Invalid exchange rate for {currency}: {rate!r}")
