"""
Aggregation engine: turn typed order and production records into the
per-fiscal-month sales and production metric bundles.

Every function here is a pure transform of its arguments. Records are
loaded into pandas frames for windowing and summing; the returned bundles
contain plain Python numbers so repeated calls compare equal.
"""

import logging
from datetime import date, timedelta

import pandas as pd

from .config import ROLLING_WINDOW_DAYS, ROLLING_WINDOW_WEEKS, TOP_LEAKAGE_REASONS
from .fiscal import date_range_of
from .kpis import order_metrics
from .records import Order, ProductionBatch, Settings

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = [
    "date", "boxes_qty", "rrp_total", "net_total", "build_cost_total",
    "install_revenue", "extras_revenue",
]
_ORDER_MONEY_COLUMNS = _ORDER_COLUMNS[2:]

_PRODUCTION_COLUMNS = ["date", "boxes_built", "boxes_over_cost", "rework_boxes"]

_METRIC_COLUMNS = [
    "expected_baseline", "actual_baseline", "contribution_per_box",
    "discount_impact", "discount_boxes_lost",
]


# ---------------------------------------------------------------------------
# Record -> frame conversion
# ---------------------------------------------------------------------------

def orders_frame(orders: list[Order]) -> pd.DataFrame:
    """Build an order frame whose row index matches the position in `orders`."""
    df = pd.DataFrame(
        [
            (o.date, o.boxes_qty, o.rrp_total, o.net_total, o.build_cost_total,
             o.install_revenue, o.extras_revenue)
            for o in orders
        ],
        columns=_ORDER_COLUMNS,
    )
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    df["boxes_qty"] = pd.to_numeric(df["boxes_qty"], errors="coerce").fillna(0).astype(int)
    for col in _ORDER_MONEY_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float)
    return df


def production_frame(batches: list[ProductionBatch]) -> pd.DataFrame:
    """Build a production frame whose row index matches the position in `batches`."""
    df = pd.DataFrame(
        [(b.date, b.boxes_built, b.boxes_over_cost, b.rework_boxes) for b in batches],
        columns=_PRODUCTION_COLUMNS,
    )
    df["date"] = pd.to_datetime(df["date"]).dt.normalize()
    for col in _PRODUCTION_COLUMNS[1:]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).astype(int)
    return df


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _window_mask(df: pd.DataFrame, start: date, end: date) -> pd.Series:
    return (df["date"] >= pd.Timestamp(start)) & (df["date"] <= pd.Timestamp(end))


def _trailing_start(end: date) -> date:
    return end - timedelta(days=ROLLING_WINDOW_DAYS - 1)


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


def trailing_window_sum(df: pd.DataFrame, column: str, end: date) -> float:
    """Sum `column` over the rolling window of days ending at `end` (inclusive)."""
    return float(df.loc[_window_mask(df, _trailing_start(end), end), column].sum())


def monthly_box_target(settings: Settings, month_name: str) -> int:
    """Return the box target for a fiscal month, 0 when it is not configured."""
    targets = settings.monthly_box_targets or {}
    try:
        return int(targets.get(month_name) or 0)
    except (TypeError, ValueError):
        logger.warning("Non-numeric box target for %s: %r", month_name, targets.get(month_name))
        return 0


def cost_leakage_reasons(
    batches: list[ProductionBatch],
    top_n: int = TOP_LEAKAGE_REASONS,
) -> list[dict]:
    """Group over-cost reason tags across batches.

    Returns
    -------
    Up to top_n dicts {"reason", "count", "boxes"} sorted by boxes descending,
    ties kept in first-seen order. count is the number of tags, boxes the
    sum of tagged boxes.
    """
    tags = [
        (tag.reason or "unknown", int(tag.boxes or 0))
        for batch in batches
        for tag in batch.over_cost_reasons
    ]
    if not tags:
        return []

    df = pd.DataFrame(tags, columns=["reason", "boxes"])
    grouped = (
        df.groupby("reason", sort=False)
        .agg(count=("boxes", "size"), boxes=("boxes", "sum"))
        .reset_index()
        .sort_values("boxes", ascending=False, kind="stable")
        .head(top_n)
    )
    return [
        {"reason": row["reason"], "count": int(row["count"]), "boxes": int(row["boxes"])}
        for row in grouped.to_dict("records")
    ]


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------

def aggregate_sales(
    orders: list[Order],
    settings: Settings,
    fy_label: str,
    month: str,
) -> dict:
    """Sales metrics for one fiscal month.

    Parameters
    ----------
    orders : All orders visible to the caller. Only those dated inside the
             month are summed, but the rolling 4-week rate uses every order.
    settings : Targets and the baseline floor.
    fy_label : Fiscal year label, e.g. "2025/26".
    month : Fiscal month name, e.g. "Oct".

    Returns
    -------
    Dict with structure:
    {
        "fy_label", "month", "period_start", "period_end",
        "boxes_sold", "monthly_box_target", "baseline_actual", "baseline_target",
        "average_discount_pct", "discount_impact_total", "discount_boxes_lost_total",
        "observed_mix": {"total_sales_value", "box_revenue", "install_revenue",
                         "extras_revenue", "box_mix_pct", "install_mix_pct",
                         "extras_mix_pct"},
        "shape_metrics": {"orders_count", "avg_boxes_per_order",
                          "avg_baseline_per_box", "rolling_4_week_boxes_per_week"},
    }
    """
    floor = float(settings.baseline_floor_per_box or 0)
    box_target = monthly_box_target(settings, month)
    start, end = date_range_of(fy_label, month, settings.fiscal_year_start_month)

    df = orders_frame(orders)
    month_df = df[_window_mask(df, start, end)]
    metrics = pd.DataFrame(
        [order_metrics(orders[i], floor) for i in month_df.index],
        columns=_METRIC_COLUMNS,
    )

    boxes_sold = int(month_df["boxes_qty"].sum())
    baseline_actual = float(metrics["actual_baseline"].sum())
    discount_impact_total = float(metrics["discount_impact"].sum())
    discount_boxes_lost_total = discount_impact_total / floor if floor else 0.0
    total_rrp = float(month_df["rrp_total"].sum())

    box_revenue = float(month_df["net_total"].sum())
    install_revenue = float(month_df["install_revenue"].sum())
    extras_revenue = float(month_df["extras_revenue"].sum())
    total_sales_value = box_revenue + install_revenue + extras_revenue

    orders_count = len(month_df)
    rolling_boxes = trailing_window_sum(df, "boxes_qty", end)

    if month_df.empty:
        logger.warning("No orders in %s %s", fy_label, month)

    bundle = {
        "fy_label": fy_label,
        "month": month,
        "period_start": start,
        "period_end": end,
        "boxes_sold": boxes_sold,
        "monthly_box_target": box_target,
        "baseline_actual": baseline_actual,
        "baseline_target": box_target * floor,
        "average_discount_pct": _pct(discount_impact_total, total_rrp),
        "discount_impact_total": discount_impact_total,
        "discount_boxes_lost_total": discount_boxes_lost_total,
        "observed_mix": {
            "total_sales_value": total_sales_value,
            "box_revenue": box_revenue,
            "install_revenue": install_revenue,
            "extras_revenue": extras_revenue,
            "box_mix_pct": _pct(box_revenue, total_sales_value),
            "install_mix_pct": _pct(install_revenue, total_sales_value),
            "extras_mix_pct": _pct(extras_revenue, total_sales_value),
        },
        "shape_metrics": {
            "orders_count": orders_count,
            "avg_boxes_per_order": boxes_sold / orders_count if orders_count else 0.0,
            "avg_baseline_per_box": baseline_actual / boxes_sold if boxes_sold else 0.0,
            "rolling_4_week_boxes_per_week": rolling_boxes / ROLLING_WINDOW_WEEKS,
        },
    }

    logger.info("Aggregated %d orders for %s %s", orders_count, fy_label, month)
    return bundle


def aggregate_production(
    batches: list[ProductionBatch],
    orders: list[Order],
    settings: Settings,
    fy_label: str,
    month: str,
    cumulative_backlog: bool = False,
) -> dict:
    """Production metrics for one fiscal month.

    Backlog is every order dated on or before the month end minus the boxes
    built in this month alone. Pass cumulative_backlog=True to subtract all
    boxes built up to the month end instead.

    Returns
    -------
    Dict with structure:
    {
        "fy_label", "month", "period_start", "period_end",
        "boxes_built", "monthly_box_target", "cost_compliance_pct",
        "cost_leakage": {"boxes_over_cost", "reasons": [{"reason", "count", "boxes"}]},
        "flow_metrics": {"boxes_built", "rolling_4_week_avg", "backlog",
                         "install_load": {"installed_boxes", "installs_per_week", "capacity"}},
        "quality_metrics": {"rework_boxes", "rework_rate"},
        "install_shape": {"installed_boxes", "collected_boxes", "install_shape_pct"},
    }
    """
    start, end = date_range_of(fy_label, month, settings.fiscal_year_start_month)

    prod_df = production_frame(batches)
    month_mask = _window_mask(prod_df, start, end)
    month_prod = prod_df[month_mask]
    month_batches = [batches[i] for i in month_prod.index]

    boxes_built = int(month_prod["boxes_built"].sum())
    boxes_over_cost = int(month_prod["boxes_over_cost"].sum())
    rework_boxes = int(month_prod["rework_boxes"].sum())

    cost_compliance_pct = 100.0
    if boxes_built:
        cost_compliance_pct = (boxes_built - boxes_over_cost) / boxes_built * 100

    rolling_built = trailing_window_sum(prod_df, "boxes_built", end)

    order_df = orders_frame(orders)
    ordered_to_date = int(order_df.loc[order_df["date"] <= pd.Timestamp(end), "boxes_qty"].sum())
    if cumulative_backlog:
        built_to_date = int(prod_df.loc[prod_df["date"] <= pd.Timestamp(end), "boxes_built"].sum())
        backlog = ordered_to_date - built_to_date
    else:
        backlog = ordered_to_date - boxes_built

    install_df = order_df[order_df["install_revenue"] > 0]
    installed_boxes = int(install_df.loc[_window_mask(install_df, start, end), "boxes_qty"].sum())
    installs_per_week = trailing_window_sum(install_df, "boxes_qty", end) / ROLLING_WINDOW_WEEKS

    if month_prod.empty:
        logger.warning("No production batches in %s %s", fy_label, month)

    bundle = {
        "fy_label": fy_label,
        "month": month,
        "period_start": start,
        "period_end": end,
        "boxes_built": boxes_built,
        "monthly_box_target": monthly_box_target(settings, month),
        "cost_compliance_pct": cost_compliance_pct,
        "cost_leakage": {
            "boxes_over_cost": boxes_over_cost,
            "reasons": cost_leakage_reasons(month_batches),
        },
        "flow_metrics": {
            "boxes_built": boxes_built,
            "rolling_4_week_avg": rolling_built / ROLLING_WINDOW_WEEKS,
            "install_load": {
                "installed_boxes": installed_boxes,
                "installs_per_week": installs_per_week,
                "capacity": int(settings.install_capacity_per_week or 0),
            },
            "backlog": backlog,
        },
        "quality_metrics": {
            "rework_boxes": rework_boxes,
            "rework_rate": _pct(rework_boxes, boxes_built),
        },
        "install_shape": {
            "installed_boxes": installed_boxes,
            "collected_boxes": boxes_built,
            "install_shape_pct": _pct(installed_boxes, boxes_built),
        },
    }

    logger.info("Aggregated %d production batches for %s %s", len(month_prod), fy_label, month)
    return bundle
