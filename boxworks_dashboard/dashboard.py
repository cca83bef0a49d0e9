"""
Dashboard-ready output functions.

These are the primary entry points for the Streamlit front end. Each
function takes records and settings that the caller has already loaded
(and filtered for the viewer's role) and returns plain dicts or
DataFrames suitable for rendering cards, charts and tables.
"""

import logging
from datetime import date

import pandas as pd

from .config import FISCAL_YEARS_BACK
from .fiscal import all_fiscal_month_names, all_fiscal_years, current_fiscal_year, fiscal_month_of
from .kpis import (
    classify,
    classify_cost_compliance,
    classify_discount,
    classify_quality,
    order_metrics,
    status_card,
)
from .records import Order, ProductionBatch, Settings
from .transforms import aggregate_production, aggregate_sales, orders_frame

logger = logging.getLogger(__name__)


def get_available_periods(
    settings: Settings,
    years_back: int = FISCAL_YEARS_BACK,
    today: date | None = None,
) -> dict:
    """Options and default selection for the fiscal year / month pickers.

    Returns
    -------
    {"fiscal_years": [...], "months": [...], "default_fy": "2025/26", "default_month": "Oct"}
    """
    today = today or date.today()
    start_month = settings.fiscal_year_start_month
    return {
        "fiscal_years": all_fiscal_years(years_back, start_month, today),
        "months": all_fiscal_month_names(start_month),
        "default_fy": current_fiscal_year(start_month, today).label,
        "default_month": fiscal_month_of(today, start_month),
    }


def get_sales_overview(
    orders: list[Order],
    settings: Settings,
    fy_label: str,
    month: str,
) -> dict:
    """Sales metrics plus the status of each headline card.

    Returns
    -------
    {"metrics": <sales bundle>, "status": {"boxes": card, "baseline": card, "discount": card}}
    where card = {"status", "label", "css_class"}.
    """
    metrics = aggregate_sales(orders, settings, fy_label, month)
    amber = settings.amber_floor_fraction

    status = {
        "boxes": classify(metrics["boxes_sold"], metrics["monthly_box_target"], amber),
        "baseline": classify(metrics["baseline_actual"], metrics["baseline_target"], amber),
        "discount": classify_discount(metrics["discount_boxes_lost_total"]),
    }
    return {
        "metrics": metrics,
        "status": {key: status_card(value) for key, value in status.items()},
    }


def get_production_overview(
    batches: list[ProductionBatch],
    orders: list[Order],
    settings: Settings,
    fy_label: str,
    month: str,
    cumulative_backlog: bool = False,
) -> dict:
    """Production metrics plus the status of each headline card.

    Returns
    -------
    {"metrics": <production bundle>,
     "status": {"boxes": card, "cost_compliance": card, "quality": card}}
    """
    metrics = aggregate_production(
        batches, orders, settings, fy_label, month, cumulative_backlog=cumulative_backlog
    )

    status = {
        "boxes": classify(
            metrics["boxes_built"], metrics["monthly_box_target"], settings.amber_floor_fraction
        ),
        "cost_compliance": classify_cost_compliance(metrics["cost_compliance_pct"]),
        "quality": classify_quality(metrics["quality_metrics"]["rework_rate"]),
    }
    return {
        "metrics": metrics,
        "status": {key: status_card(value) for key, value in status.items()},
    }


def get_director_overview(
    orders: list[Order],
    batches: list[ProductionBatch],
    settings: Settings,
    fy_label: str,
    month: str,
) -> dict:
    """Consolidated view: both overviews side by side plus the sold/built gap."""
    sales = get_sales_overview(orders, settings, fy_label, month)
    production = get_production_overview(batches, orders, settings, fy_label, month)

    boxes_sold = sales["metrics"]["boxes_sold"]
    boxes_built = production["metrics"]["boxes_built"]
    return {
        "fy_label": fy_label,
        "month": month,
        "sales": sales,
        "production": production,
        "consolidated": {
            "boxes_sold": boxes_sold,
            "boxes_built": boxes_built,
            "sold_minus_built": boxes_sold - boxes_built,
            "monthly_box_target": sales["metrics"]["monthly_box_target"],
        },
    }


def get_orders_table(orders: list[Order], settings: Settings) -> pd.DataFrame:
    """One row per order with its computed baseline and discount metrics.

    Returns
    -------
    DataFrame with columns:
        id, date, reference, sales_rep_name, boxes_qty, rrp_total, net_total,
        build_cost_total, install_revenue, extras_revenue, actual_baseline,
        contribution_per_box, discount_impact, discount_boxes_lost
    """
    columns = [
        "id", "date", "reference", "sales_rep_name", "boxes_qty", "rrp_total",
        "net_total", "build_cost_total", "install_revenue", "extras_revenue",
        "actual_baseline", "contribution_per_box", "discount_impact", "discount_boxes_lost",
    ]
    rows = []
    for order in orders:
        metrics = order_metrics(order, settings.baseline_floor_per_box)
        rows.append({
            "id": order.id,
            "date": order.date,
            "reference": order.reference,
            "sales_rep_name": order.sales_rep_name,
            "boxes_qty": order.boxes_qty,
            "rrp_total": order.rrp_total,
            "net_total": order.net_total,
            "build_cost_total": order.build_cost_total,
            "install_revenue": order.install_revenue,
            "extras_revenue": order.extras_revenue,
            "actual_baseline": metrics["actual_baseline"],
            "contribution_per_box": metrics["contribution_per_box"],
            "discount_impact": metrics["discount_impact"],
            "discount_boxes_lost": metrics["discount_boxes_lost"],
        })
    return pd.DataFrame(rows, columns=columns)


def get_team_totals(orders: list[Order], start: date, end: date) -> dict:
    """Team-wide box and order counts in a window, shown to individual reps."""
    df = orders_frame(orders)
    window = df[(df["date"] >= pd.Timestamp(start)) & (df["date"] <= pd.Timestamp(end))]
    return {
        "total_boxes": int(window["boxes_qty"].sum()),
        "total_orders": len(window),
    }


def get_monthly_trend(
    orders: list[Order],
    batches: list[ProductionBatch],
    settings: Settings,
    fy_label: str,
) -> pd.DataFrame:
    """Boxes sold, built and targeted for every month of a fiscal year.

    Returns
    -------
    DataFrame with columns: month, boxes_sold, boxes_built, monthly_box_target
    """
    rows = []
    for month in all_fiscal_month_names(settings.fiscal_year_start_month):
        sales = aggregate_sales(orders, settings, fy_label, month)
        production = aggregate_production(batches, orders, settings, fy_label, month)
        rows.append({
            "month": month,
            "boxes_sold": sales["boxes_sold"],
            "boxes_built": production["boxes_built"],
            "monthly_box_target": sales["monthly_box_target"],
        })

    logger.info("Built monthly trend for %s", fy_label)
    return pd.DataFrame(rows, columns=["month", "boxes_sold", "boxes_built", "monthly_box_target"])
