"""
Manual entry: turn order and production form values into typed records.

The Streamlit widgets already constrain most types; these helpers apply the
same rules as CSV import (positive box counts, non-negative money extras,
well-formed reason tags) and collect every problem before refusing a form.
"""

import logging
from datetime import date

from .loaders.csv_codec import parse_reasons
from .loaders.utils import clean_text, is_blank, safe_float, safe_int
from .records import Order, ProductionBatch

logger = logging.getLogger(__name__)


class FormError(ValueError):
    """Raised with every problem found on a submitted form."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _count(values: dict, key: str, minimum: int, errors: list[str]) -> int:
    raw = values.get(key)
    value = 0 if is_blank(raw) else safe_int(raw)
    if value is None or value < minimum:
        kind = "a positive integer" if minimum >= 1 else "a non-negative integer"
        errors.append(f"{key} must be {kind}")
        return 0
    return value


def _money(values: dict, key: str, errors: list[str], non_negative: bool = False) -> float:
    raw = values.get(key)
    value = 0.0 if is_blank(raw) else safe_float(raw)
    if value is None:
        errors.append(f"{key} must be a number")
        return 0.0
    if non_negative and value < 0:
        errors.append(f"{key} cannot be negative")
    return value


def order_from_form(
    values: dict,
    sales_rep_id: int | None = None,
    order_id: int | None = None,
) -> Order:
    """Build an Order from form values keyed like the CSV columns.

    Raises FormError listing every invalid field.
    """
    errors: list[str] = []
    order_date = values.get("order_date")
    if not isinstance(order_date, date):
        errors.append("order_date is required")

    order = Order(
        id=order_id,
        date=order_date,
        reference=clean_text(values.get("order_ref")),
        sales_rep_id=sales_rep_id,
        boxes_qty=_count(values, "boxes_qty", 1, errors),
        rrp_total=_money(values, "box_rrp_total", errors),
        net_total=_money(values, "box_net_total", errors),
        build_cost_total=_money(values, "box_build_cost_total", errors),
        install_revenue=_money(values, "install_revenue", errors, non_negative=True),
        extras_revenue=_money(values, "extras_revenue", errors, non_negative=True),
        notes=clean_text(values.get("notes")),
    )
    if errors:
        logger.warning("Order form rejected: %s", "; ".join(errors))
        raise FormError(errors)
    return order


def batch_from_form(
    values: dict,
    reasons: list[dict] | None = None,
    batch_id: int | None = None,
) -> ProductionBatch:
    """Build a ProductionBatch from form values and reason-tag rows.

    Reason rows with neither a reason nor a box count are ignored.
    """
    errors: list[str] = []
    production_date = values.get("production_date")
    if not isinstance(production_date, date):
        errors.append("production_date is required")

    tags = [r for r in reasons or [] if not (is_blank(r.get("reason")) and is_blank(r.get("boxes")))]
    parsed = []
    try:
        parsed = parse_reasons(tags)
    except ValueError as exc:
        errors.append(str(exc))

    batch = ProductionBatch(
        id=batch_id,
        date=production_date,
        boxes_built=_count(values, "boxes_built", 0, errors),
        boxes_over_cost=_count(values, "boxes_over_cost", 0, errors),
        over_cost_reasons=parsed,
        rework_boxes=_count(values, "rework_boxes", 0, errors),
        notes=clean_text(values.get("notes")),
    )
    if errors:
        logger.warning("Production form rejected: %s", "; ".join(errors))
        raise FormError(errors)
    return batch


def order_form_values(order: Order | None = None) -> dict:
    """Initial widget values: blank for a new order, the stored values when editing."""
    if order is None:
        return {
            "order_date": date.today(), "order_ref": "", "boxes_qty": 1,
            "box_rrp_total": 0.0, "box_net_total": 0.0, "box_build_cost_total": 0.0,
            "install_revenue": 0.0, "extras_revenue": 0.0, "notes": "",
        }
    return {
        "order_date": order.date,
        "order_ref": order.reference or "",
        "boxes_qty": int(order.boxes_qty),
        "box_rrp_total": float(order.rrp_total),
        "box_net_total": float(order.net_total),
        "box_build_cost_total": float(order.build_cost_total),
        "install_revenue": float(order.install_revenue or 0),
        "extras_revenue": float(order.extras_revenue or 0),
        "notes": order.notes or "",
    }


def batch_form_values(batch: ProductionBatch | None = None) -> tuple[dict, list[dict]]:
    """Initial widget values and reason rows for a new or existing batch."""
    if batch is None:
        return {
            "production_date": date.today(), "boxes_built": 0, "boxes_over_cost": 0,
            "rework_boxes": 0, "notes": "",
        }, []
    values = {
        "production_date": batch.date,
        "boxes_built": int(batch.boxes_built),
        "boxes_over_cost": int(batch.boxes_over_cost or 0),
        "rework_boxes": int(batch.rework_boxes or 0),
        "notes": batch.notes or "",
    }
    return values, [r.to_dict() for r in batch.over_cost_reasons]
