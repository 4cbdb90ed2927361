"""Report serializers."""

from sales_kernel.reporting.csv_report import (
    escape_field,
    parse_report,
    sale_report_filename,
    serialize_sale_report,
    serialize_settlement_report,
    settlement_report_filename,
    split_row,
    write_report,
)

__all__ = [
    "escape_field",
    "parse_report",
    "sale_report_filename",
    "serialize_sale_report",
    "serialize_settlement_report",
    "settlement_report_filename",
    "split_row",
    "write_report",
]
