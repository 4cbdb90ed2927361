"""
sales_config -- single public entrypoint for route sales configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- sits above ``sales_kernel`` and below
    ``sales_services``.  The kernel MUST NEVER import from
    ``sales_config``; ``sales_services`` translates the config into
    kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the explicit or environment-provided path
      does not exist.
    - ``ValueError`` -- invalid values (see ``sales_config.loader``).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SALES_CONFIG_TRACE`` log entry with the source path and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sales_config.loader import load_config
from sales_config.schema import (
    ConsolidationConfig,
    CurrencyConfig,
    DatabaseConfig,
    RouteSalesConfig,
    SalesConfig,
)

_logger = logging.getLogger("sales_kernel.config")

CONFIG_ENV_VAR = "ROUTE_SALES_CONFIG"

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> RouteSalesConfig:
    """The ONLY public configuration entrypoint.

    Lookup order: ``path``, then the ``ROUTE_SALES_CONFIG`` environment
    variable, then the packaged ``defaults.yaml``.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
    config = load_config(Path(path))

    _logger.info(
        "SALES_CONFIG_TRACE",
        extra={
            "trace_type": "SALES_CONFIG_TRACE",
            "source": config.source,
            "checksum": config.checksum,
            "base_currency": config.currency.base,
            "atomic_commit": config.sales.atomic_commit,
            "timezone": config.consolidation.timezone,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "ConsolidationConfig",
    "CurrencyConfig",
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "RouteSalesConfig",
    "SalesConfig",
    "get_active_config",
]
