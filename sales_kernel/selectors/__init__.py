"""Read-only selectors."""

from sales_kernel.selectors.base import BaseSelector
from sales_kernel.selectors.sale_selector import SaleSelector

__all__ = ["BaseSelector", "SaleSelector"]
