"""CSV ingestion and export for orders and production batches."""

from .csv_codec import CSVStructureError, RowResult, data_row_number, parse_reasons
from .csv_codec import read_orders_csv, read_production_csv
from .csv_codec import validate_order_row, validate_production_row
from .csv_codec import format_orders_for_export, format_production_for_export
from .csv_codec import export_filename, template_filename, template_frame, to_csv_bytes

__all__ = [
    "CSVStructureError",
    "RowResult",
    "data_row_number",
    "parse_reasons",
    "read_orders_csv",
    "read_production_csv",
    "validate_order_row",
    "validate_production_row",
    "format_orders_for_export",
    "format_production_for_export",
    "export_filename",
    "template_filename",
    "template_frame",
    "to_csv_bytes",
]
