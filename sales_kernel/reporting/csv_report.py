"""
Delimited text reports for a sale and for a daily settlement.

Both reports share one escaping rule: a field is wrapped in double quotes,
with inner quotes doubled, only when its text contains a comma, a double
quote, or a line break (LF or CR).  Rows are joined with LF.  Output is a plain ``str``;
when encoded it is UTF-8 with no byte-order mark.

Reading goes through the stdlib ``csv`` reader, which inverts that rule.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable, Sequence
from pathlib import Path

from sales_kernel.db.types import round_money
from sales_kernel.domain.dtos import Sale
from sales_kernel.domain.settlement import SettlementMatrix

__all__ = [
    "SALE_HEADER",
    "escape_field",
    "join_row",
    "parse_report",
    "sale_report_filename",
    "serialize_sale_report",
    "serialize_settlement_report",
    "settlement_report_filename",
    "split_row",
    "write_report",
]

SALE_HEADER = (
    "ItemID",
    "ItemName",
    "Presentation",
    "Category",
    "Segment",
    "UnitPrice",
    "Quantity",
    "Subtotal",
)

_NEEDS_QUOTING = (",", '"', "\n", "\r")


def escape_field(value: object) -> str:
    """Render one field with minimal quoting.  None renders as empty."""
    text = "" if value is None else str(value)
    if any(ch in text for ch in _NEEDS_QUOTING):
        return '"' + text.replace('"', '""') + '"'
    return text


def join_row(values: Iterable[object]) -> str:
    return ",".join(escape_field(value) for value in values)


def parse_report(text: str) -> list[list[str]]:
    """Split report text into rows of unescaped fields."""
    return [row for row in csv.reader(io.StringIO(text, newline=""))]


def split_row(line: str) -> list[str]:
    """Unescaped fields of a single report row."""
    rows = parse_report(line)
    if not rows:
        return [""]
    return rows[0]


def _money(value) -> str:
    return f"{round_money(value):.2f}"


def serialize_sale_report(sale: Sale) -> str:
    """
    Receipt-style report of one sale.

    Rows: container line, client line, column header, one row per line
    item, and the sale total.
    """
    container = sale.container
    client = sale.client
    rows = [
        escape_field(f"Container: {container.make} {container.model}, Plate: {container.plate}"),
        escape_field(f"Client: {client.name}, Tax ID: {client.tax_id}"),
        join_row(SALE_HEADER),
    ]
    for line in sale.lines:
        rows.append(
            join_row(
                (
                    line.item_id,
                    line.name,
                    line.presentation,
                    line.category,
                    line.segment,
                    _money(line.unit_price),
                    line.quantity,
                    _money(line.subtotal),
                )
            )
        )
    rows.append(join_row(("Sale Total:", _money(sale.total))))
    return "\n".join(rows)


def serialize_settlement_report(
    matrix: SettlementMatrix,
    item_order: Sequence[str] | None = None,
) -> str:
    """
    Per-client quantity matrix for one operator's day.

    Columns follow ``item_order`` (default: the matrix's own display-name
    ordering).  Clients are listed by display name, then id, and the last
    row holds the column sums.
    """
    order = tuple(item_order) if item_order is not None else matrix.item_order()
    operator = matrix.operator_name or matrix.operator_id

    rows = [
        escape_field("Container: All Containers"),
        escape_field(f"Operator: {operator}"),
        join_row(
            ["Client Name"] + [matrix.item_metadata[item_id].label for item_id in order]
        ),
    ]
    for client_id in matrix.client_order():
        rows.append(
            join_row(
                [matrix.clients[client_id].name]
                + [matrix.quantity(client_id, item_id) for item_id in order]
            )
        )
    totals = matrix.column_totals(order)
    rows.append(join_row(["Total:"] + [totals[item_id] for item_id in order]))
    return "\n".join(rows)


def sale_report_filename(sale: Sale) -> str:
    return f"sale_{sale.client.tax_id}_{sale.recorded_at.date().isoformat()}.csv"


def settlement_report_filename(matrix: SettlementMatrix) -> str:
    return f"settlement_{matrix.day.isoformat()}_{matrix.operator_id}.csv"


def write_report(directory: Path | str, filename: str, text: str) -> Path:
    """Write a report as UTF-8 (no BOM) with LF line endings."""
    path = Path(directory) / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(text)
    return path
