"""Caller-facing services built on sales_kernel and sales_config."""

from sales_services.orchestrator import SalesOrchestrator

__all__ = ["SalesOrchestrator"]
