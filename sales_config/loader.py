"""
Configuration Loader (``sales_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the typed
``sales_config.schema`` dataclasses.  Callers use
``sales_config.get_active_config()``; this module is the tooling behind it.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Default exchange multipliers are positive Decimals.
* The timezone names a zone known to ``zoneinfo``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` with the offending key.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from sales_config.schema import (
    ConsolidationConfig,
    CurrencyConfig,
    DatabaseConfig,
    RouteSalesConfig,
    SalesConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    return section


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    defaults = DatabaseConfig()
    return DatabaseConfig(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
    )


def parse_currency(data: dict[str, Any]) -> CurrencyConfig:
    rates = []
    for code, raw in (data.get("default_rates") or {}).items():
        try:
            rate = Decimal(str(raw))
        except InvalidOperation as exc:
            raise ValueError(f"currency.default_rates.{code}: not a number: {raw!r}") from exc
        if not rate.is_finite() or rate <= 0:
            raise ValueError(f"currency.default_rates.{code}: must be positive, got {raw!r}")
        rates.append((str(code), rate))
    return CurrencyConfig(
        base=str(data.get("base", CurrencyConfig.base)),
        default_rates=tuple(sorted(rates)),
    )


def parse_sales(data: dict[str, Any]) -> SalesConfig:
    atomic = data.get("atomic_commit", SalesConfig.atomic_commit)
    if not isinstance(atomic, bool):
        raise ValueError(f"sales.atomic_commit must be true or false, got {atomic!r}")
    return SalesConfig(atomic_commit=atomic)


def parse_consolidation(data: dict[str, Any]) -> ConsolidationConfig:
    tz_name = str(data.get("timezone", ConsolidationConfig.timezone))
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"consolidation.timezone: unknown zone {tz_name!r}") from exc
    return ConsolidationConfig(timezone=tz_name)


def parse_config(data: dict[str, Any], source: str | None = None) -> RouteSalesConfig:
    """Parse a full configuration mapping."""
    return RouteSalesConfig(
        database=parse_database(_section(data, "database")),
        currency=parse_currency(_section(data, "currency")),
        sales=parse_sales(_section(data, "sales")),
        consolidation=parse_consolidation(_section(data, "consolidation")),
        source=source,
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> RouteSalesConfig:
    """Load and parse a configuration file."""
    return parse_config(load_yaml_file(path), source=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
