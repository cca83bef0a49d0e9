"""
Configuration: defaults, RAG band registry, CSV layouts, constants.

RAG_BANDS maps each domain-specific KPI to its evaluation direction and the
green/amber limits that drive its three-state classification.
"""

import os
from pathlib import Path

# ---------------------------------------------------------------------------
# File paths (override the database location with BOXWORKS_DB)
# ---------------------------------------------------------------------------
DATA_DIR = Path(__file__).resolve().parent.parent

DB_PATH = Path(os.environ.get("BOXWORKS_DB", DATA_DIR / "boxworks.db"))

# ---------------------------------------------------------------------------
# Business identity
# ---------------------------------------------------------------------------
BUSINESS_NAME = "Boxworks"

ROLES = ("sales", "production", "director")

# Each dashboard page reads and writes the note of its own role
PAGE_NOTE_ROLES = {
    "Director Overview": "director",
    "Sales Dashboard": "sales",
    "Production Dashboard": "production",
}

# ---------------------------------------------------------------------------
# Fiscal calendar
# ---------------------------------------------------------------------------
# Calendar order; the fiscal order is this list rotated to the start month.
MONTH_ABBREVIATIONS = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]

DEFAULT_FY_START_MONTH = 7
FISCAL_YEARS_BACK = 2

# ---------------------------------------------------------------------------
# Settings defaults
# ---------------------------------------------------------------------------
DEFAULT_BASELINE_FLOOR_PER_BOX = 700.0
DEFAULT_YEARLY_BOX_TARGET = 900
DEFAULT_AMBER_FLOOR_FRACTION = 0.90
DEFAULT_INSTALL_CAPACITY_PER_WEEK = 15

# Sums to DEFAULT_YEARLY_BOX_TARGET
DEFAULT_MONTHLY_BOX_TARGETS: dict[str, int] = {
    "Jul": 60, "Aug": 70, "Sep": 80, "Oct": 80, "Nov": 85, "Dec": 75,
    "Jan": 70, "Feb": 75, "Mar": 85, "Apr": 80, "May": 80, "Jun": 60,
}

# ---------------------------------------------------------------------------
# RAG bands
# ---------------------------------------------------------------------------
# direction: "higher_is_better" or "lower_is_better"
# green / amber: inclusive limits (minimums when higher is better,
#                maximums when lower is better)
RAG_BANDS: dict[str, dict] = {
    "discount_boxes_lost": {
        "direction": "lower_is_better",
        "unit": "boxes",
        "green": 1.0,
        "amber": 3.0,
    },
    "cost_compliance_pct": {
        "direction": "higher_is_better",
        "unit": "%",
        "green": 95.0,
        "amber": 90.0,
    },
    "rework_rate_pct": {
        "direction": "lower_is_better",
        "unit": "%",
        "green": 3.0,
        "amber": 5.0,
    },
}

STATUS_LABELS: dict[str, str] = {
    "green": "On target",
    "amber": "Watch",
    "red": "Below target",
}

# Never shown to users in status text
FORBIDDEN_STATUS_WORDS = ("Failed", "Missed", "Underperformed")

RAG_COLORS = {
    "green": "#2ecc71",
    "amber": "#f39c12",
    "red": "#e74c3c",
}

# ---------------------------------------------------------------------------
# Aggregation constants
# ---------------------------------------------------------------------------
ROLLING_WINDOW_DAYS = 28
ROLLING_WINDOW_WEEKS = 4
TOP_LEAKAGE_REASONS = 5

# ---------------------------------------------------------------------------
# CSV layouts
# ---------------------------------------------------------------------------
ORDER_REQUIRED_COLUMNS = [
    "order_date",
    "boxes_qty",
    "box_rrp_total",
    "box_net_total",
    "box_build_cost_total",
]

ORDER_EXPORT_COLUMNS = [
    "id",
    "order_date",
    "order_ref",
    "sales_rep_email",
    "sales_rep_name",
    "boxes_qty",
    "box_rrp_total",
    "box_net_total",
    "box_build_cost_total",
    "install_revenue",
    "extras_revenue",
    "notes",
]

ORDER_TEMPLATE_COLUMNS = [c for c in ORDER_EXPORT_COLUMNS if c not in ("id", "sales_rep_name")]

PRODUCTION_REQUIRED_COLUMNS = [
    "production_date",
    "boxes_built",
]

PRODUCTION_EXPORT_COLUMNS = [
    "id",
    "production_date",
    "boxes_built",
    "boxes_over_cost",
    "over_cost_reasons_json",
    "rework_boxes",
    "notes",
]

PRODUCTION_TEMPLATE_COLUMNS = [c for c in PRODUCTION_EXPORT_COLUMNS if c != "id"]

DATE_FORMAT = "%Y-%m-%d"
