"""ORM models for the route sales kernel."""

from sales_kernel.models.document import Document
from sales_kernel.models.stock import StockEntry

__all__ = [
    "Document",
    "StockEntry",
]
