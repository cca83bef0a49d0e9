"""
CSV row codec for orders and production batches.

Import: read a UTF-8 CSV into string rows, check the header once, then
validate and coerce each row into an Order or ProductionBatch, collecting
every problem on the row. Export: render records into frames with a fixed
column order, plus one-row templates for data entry.

Row numbers count the header as row 1, so the first data row is row 2.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import pandas as pd

from ..config import (
    ORDER_EXPORT_COLUMNS,
    ORDER_REQUIRED_COLUMNS,
    ORDER_TEMPLATE_COLUMNS,
    PRODUCTION_EXPORT_COLUMNS,
    PRODUCTION_REQUIRED_COLUMNS,
    PRODUCTION_TEMPLATE_COLUMNS,
)
from ..records import Order, OverCostReason, ProductionBatch
from .utils import (
    clean_text,
    format_date,
    is_blank,
    is_valid_email,
    parse_date,
    safe_float,
    safe_int,
)

logger = logging.getLogger(__name__)

HEADER_ROW = 1

_TEMPLATES = {
    "orders": (
        ORDER_TEMPLATE_COLUMNS,
        {
            "order_date": "2025-01-15",
            "order_ref": "ORD-001",
            "sales_rep_email": "alice@example.com",
            "boxes_qty": "2",
            "box_rrp_total": "2800",
            "box_net_total": "2600",
            "box_build_cost_total": "1400",
            "install_revenue": "500",
            "extras_revenue": "200",
            "notes": "Sample order",
        },
    ),
    "production": (
        PRODUCTION_TEMPLATE_COLUMNS,
        {
            "production_date": "2025-01-15",
            "boxes_built": "5",
            "boxes_over_cost": "1",
            "over_cost_reasons_json": '[{"reason": "material", "boxes": 1}]',
            "rework_boxes": "0",
            "notes": "Sample production entry",
        },
    ),
}


class CSVStructureError(ValueError):
    """The file itself is unusable (unreadable, empty or missing columns)."""


@dataclass
class RowResult:
    row_number: int
    record: Order | ProductionBatch | None = None
    record_id: int | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def data_row_number(index: int) -> int:
    """Row number of the 0-based data row `index`, counting the header as row 1."""
    return index + HEADER_ROW + 1


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------

def read_csv_rows(source: Any, required_columns: list[str]) -> list[dict]:
    """Read a CSV into a list of string-valued row dicts.

    Parameters
    ----------
    source : Path or file-like object (text or bytes).
    required_columns : Header names that must be present. Extra columns
                       are kept but ignored by the validators.

    Raises
    ------
    CSVStructureError before any row is handed back if the file cannot be
    parsed or a required column is missing.
    """
    try:
        df = pd.read_csv(
            source,
            dtype=str,
            keep_default_na=False,
            index_col=False,
            encoding="utf-8-sig",
        )
    except pd.errors.EmptyDataError as exc:
        raise CSVStructureError("CSV file is empty") from exc
    except (pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise CSVStructureError(f"Could not parse CSV: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    missing = [c for c in required_columns if c not in df.columns]
    if missing:
        raise CSVStructureError(f"Missing required columns: {', '.join(missing)}")

    logger.info("Read %d CSV rows", len(df))
    return df.to_dict("records")


def read_orders_csv(source: Any) -> list[dict]:
    return read_csv_rows(source, ORDER_REQUIRED_COLUMNS)


def read_production_csv(source: Any) -> list[dict]:
    return read_csv_rows(source, PRODUCTION_REQUIRED_COLUMNS)


def _check_required(row: dict, columns: list[str], errors: list[str]) -> None:
    for col in columns:
        if is_blank(row.get(col)):
            errors.append(f"{col} is required")


def _check_date(row: dict, col: str, errors: list[str]) -> date | None:
    raw = row.get(col)
    if is_blank(raw):
        return None
    parsed = parse_date(raw)
    if parsed is None:
        errors.append(f"{col} must be a valid date (YYYY-MM-DD)")
    return parsed


def _check_number(row: dict, col: str, errors: list[str], default: float | None = None,
                  non_negative: bool = False) -> float | None:
    raw = row.get(col)
    if is_blank(raw):
        return default
    value = safe_float(raw)
    if value is None:
        errors.append(f"{col} must be a number")
    elif non_negative and value < 0:
        errors.append(f"{col} cannot be negative")
    return value


def _check_count(row: dict, col: str, errors: list[str], minimum: int,
                 default: int | None = None) -> int | None:
    raw = row.get(col)
    if is_blank(raw):
        return default
    value = safe_int(raw)
    if value is None or value < minimum:
        kind = "a positive integer" if minimum >= 1 else "a non-negative integer"
        errors.append(f"{col} must be {kind}")
        return None
    return value


def _check_id(row: dict, errors: list[str]) -> int | None:
    """Return a positive record id, or None when the row should insert."""
    raw = row.get("id")
    if is_blank(raw):
        return None
    value = safe_int(raw)
    if value is None:
        errors.append("id must be a whole number")
        return None
    return value if value > 0 else None


def parse_reasons(raw: Any) -> list[OverCostReason]:
    """Parse an over-cost reasons cell into typed tags.

    Raises ValueError with a user-facing message when the cell is not a
    JSON array of {"reason", "boxes"} objects.
    """
    if is_blank(raw):
        return []
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError("over_cost_reasons_json must be valid JSON") from exc
    else:
        parsed = raw
    if not isinstance(parsed, list):
        raise ValueError("over_cost_reasons_json must be a valid JSON array")

    reasons = []
    for item in parsed:
        if not isinstance(item, dict):
            raise ValueError("over_cost_reasons_json entries must be objects with reason and boxes")
        boxes_raw = item.get("boxes")
        boxes = 0 if is_blank(boxes_raw) else safe_int(boxes_raw)
        if boxes is None or boxes < 0:
            raise ValueError("over_cost_reasons_json boxes must be non-negative integers")
        reasons.append(OverCostReason(reason=clean_text(item.get("reason")) or "unknown", boxes=boxes))
    return reasons


def validate_order_row(row: dict, row_number: int) -> RowResult:
    """Validate and coerce one order row.

    The sales-rep e-mail is only shape-checked here; resolving it to an
    account is left to the importer. On success the returned Order carries
    the e-mail in sales_rep_email and no sales_rep_id.
    """
    errors: list[str] = []
    _check_required(row, ORDER_REQUIRED_COLUMNS, errors)

    order_date = _check_date(row, "order_date", errors)
    boxes_qty = _check_count(row, "boxes_qty", errors, minimum=1)
    rrp_total = _check_number(row, "box_rrp_total", errors)
    net_total = _check_number(row, "box_net_total", errors)
    build_cost_total = _check_number(row, "box_build_cost_total", errors)
    install_revenue = _check_number(row, "install_revenue", errors, default=0.0, non_negative=True)
    extras_revenue = _check_number(row, "extras_revenue", errors, default=0.0, non_negative=True)

    email = clean_text(row.get("sales_rep_email"))
    if email is not None and not is_valid_email(email):
        errors.append("sales_rep_email must be a valid email address")

    record_id = _check_id(row, errors)

    result = RowResult(
        row_number=row_number,
        record_id=record_id,
        errors=[f"Row {row_number}: {err}" for err in errors],
    )
    if result.valid:
        result.record = Order(
            id=record_id,
            date=order_date,
            reference=clean_text(row.get("order_ref")),
            boxes_qty=boxes_qty,
            rrp_total=rrp_total,
            net_total=net_total,
            build_cost_total=build_cost_total,
            install_revenue=install_revenue,
            extras_revenue=extras_revenue,
            notes=clean_text(row.get("notes")),
            sales_rep_email=email,
        )
    return result


def validate_production_row(row: dict, row_number: int) -> RowResult:
    """Validate and coerce one production row."""
    errors: list[str] = []
    _check_required(row, PRODUCTION_REQUIRED_COLUMNS, errors)

    production_date = _check_date(row, "production_date", errors)
    boxes_built = _check_count(row, "boxes_built", errors, minimum=0)
    boxes_over_cost = _check_count(row, "boxes_over_cost", errors, minimum=0, default=0)
    rework_boxes = _check_count(row, "rework_boxes", errors, minimum=0, default=0)

    reasons: list[OverCostReason] = []
    try:
        reasons = parse_reasons(row.get("over_cost_reasons_json"))
    except ValueError as exc:
        errors.append(str(exc))

    record_id = _check_id(row, errors)

    result = RowResult(
        row_number=row_number,
        record_id=record_id,
        errors=[f"Row {row_number}: {err}" for err in errors],
    )
    if result.valid:
        result.record = ProductionBatch(
            id=record_id,
            date=production_date,
            boxes_built=boxes_built,
            boxes_over_cost=boxes_over_cost,
            over_cost_reasons=reasons,
            rework_boxes=rework_boxes,
            notes=clean_text(row.get("notes")),
        )
    return result


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------

def reasons_to_json(reasons: list[OverCostReason] | None) -> str:
    return json.dumps([r.to_dict() for r in reasons or []])


def format_orders_for_export(orders: list[Order]) -> pd.DataFrame:
    """Render orders in export column order.

    Sales-rep e-mail and name must already be joined onto the records.
    """
    rows = [
        {
            "id": o.id,
            "order_date": format_date(o.date),
            "order_ref": o.reference or "",
            "sales_rep_email": o.sales_rep_email or "",
            "sales_rep_name": o.sales_rep_name or "",
            "boxes_qty": o.boxes_qty,
            "box_rrp_total": o.rrp_total,
            "box_net_total": o.net_total,
            "box_build_cost_total": o.build_cost_total,
            "install_revenue": o.install_revenue or 0,
            "extras_revenue": o.extras_revenue or 0,
            "notes": o.notes or "",
        }
        for o in orders
    ]
    return pd.DataFrame(rows, columns=ORDER_EXPORT_COLUMNS, dtype=object)


def format_production_for_export(batches: list[ProductionBatch]) -> pd.DataFrame:
    """Render production batches in export column order."""
    rows = [
        {
            "id": b.id,
            "production_date": format_date(b.date),
            "boxes_built": b.boxes_built,
            "boxes_over_cost": b.boxes_over_cost or 0,
            "over_cost_reasons_json": reasons_to_json(b.over_cost_reasons),
            "rework_boxes": b.rework_boxes or 0,
            "notes": b.notes or "",
        }
        for b in batches
    ]
    return pd.DataFrame(rows, columns=PRODUCTION_EXPORT_COLUMNS, dtype=object)


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def export_filename(kind: str, today: date | None = None) -> str:
    """e.g. orders_export_2025-01-15.csv"""
    if kind not in _TEMPLATES:
        raise ValueError(f"Unknown export kind: {kind!r}")
    return f"{kind}_export_{(today or date.today()).strftime('%Y-%m-%d')}.csv"


def template_frame(kind: str) -> pd.DataFrame:
    """Header plus one illustrative row for the given record kind."""
    if kind not in _TEMPLATES:
        raise ValueError(f"Unknown template kind: {kind!r}")
    columns, example = _TEMPLATES[kind]
    return pd.DataFrame([example], columns=columns)


def template_filename(kind: str) -> str:
    if kind not in _TEMPLATES:
        raise ValueError(f"Unknown template kind: {kind!r}")
    return f"{kind}_template.csv"
