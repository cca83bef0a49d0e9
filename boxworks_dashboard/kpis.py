"""
KPI computation functions — pure functions with no side effects.

Provides per-order financial metrics and the RAG (on target / watch /
below target) classification rules used by every dashboard card.
"""

import logging
from enum import Enum

from .config import FORBIDDEN_STATUS_WORDS, RAG_BANDS, STATUS_LABELS
from .records import Order

logger = logging.getLogger(__name__)


class RAGStatus(str, Enum):
    ON_TARGET = "green"
    WATCH = "amber"
    BELOW_TARGET = "red"

    @property
    def label(self) -> str:
        return status_text(self)

    @property
    def css_class(self) -> str:
        return f"rag-{self.value}"


def order_metrics(order: Order, baseline_floor_per_box: float) -> dict:
    """Return the baseline and discount metrics for a single order.

    Logic
    -----
    - expected_baseline    = rrp_total - build_cost_total
    - actual_baseline      = net_total - build_cost_total
    - contribution_per_box = actual_baseline / boxes_qty  (qty < 1 counts as 1)
    - discount_impact      = expected_baseline - actual_baseline
    - discount_boxes_lost  = discount_impact / baseline_floor_per_box (0 if floor is 0)

    Negative values are passed through unchanged.
    """
    rrp_total = float(order.rrp_total or 0)
    net_total = float(order.net_total or 0)
    build_cost_total = float(order.build_cost_total or 0)
    boxes_qty = order.boxes_qty if order.boxes_qty and order.boxes_qty > 0 else 1

    expected_baseline = rrp_total - build_cost_total
    actual_baseline = net_total - build_cost_total
    discount_impact = expected_baseline - actual_baseline

    discount_boxes_lost = 0.0
    if baseline_floor_per_box:
        discount_boxes_lost = discount_impact / baseline_floor_per_box

    return {
        "expected_baseline": expected_baseline,
        "actual_baseline": actual_baseline,
        "contribution_per_box": actual_baseline / boxes_qty,
        "discount_impact": discount_impact,
        "discount_boxes_lost": discount_boxes_lost,
    }


def classify(
    value: float,
    target: float,
    amber_floor_fraction: float = 0.90,
) -> RAGStatus:
    """Classify value against target.

    Logic
    -----
    - target == 0                        -> ON_TARGET (no target is not a problem)
    - value / target >= 1.0              -> ON_TARGET
    - value / target >= amber_floor      -> WATCH
    - otherwise                          -> BELOW_TARGET
    """
    if target == 0:
        return RAGStatus.ON_TARGET

    ratio = value / target
    if ratio >= 1.0:
        return RAGStatus.ON_TARGET
    if ratio >= amber_floor_fraction:
        return RAGStatus.WATCH
    return RAGStatus.BELOW_TARGET


def classify_band(value: float, kpi_name: str) -> RAGStatus:
    """Classify value using the fixed green/amber limits in RAG_BANDS."""
    band = RAG_BANDS[kpi_name]
    if band["direction"] == "higher_is_better":
        if value >= band["green"]:
            return RAGStatus.ON_TARGET
        if value >= band["amber"]:
            return RAGStatus.WATCH
        return RAGStatus.BELOW_TARGET
    else:  # lower_is_better
        if value <= band["green"]:
            return RAGStatus.ON_TARGET
        if value <= band["amber"]:
            return RAGStatus.WATCH
        return RAGStatus.BELOW_TARGET


def classify_discount(equivalent_boxes_lost: float) -> RAGStatus:
    """<=1 box on target, up to 3 boxes watch, beyond that below target."""
    return classify_band(equivalent_boxes_lost, "discount_boxes_lost")


def classify_cost_compliance(pct: float) -> RAGStatus:
    """>=95% on target, 90-95% watch, under 90% below target."""
    return classify_band(pct, "cost_compliance_pct")


def classify_quality(rework_rate_pct: float) -> RAGStatus:
    """<=3% on target, up to 5% watch, beyond that below target."""
    return classify_band(rework_rate_pct, "rework_rate_pct")


def uses_approved_language(text: str) -> bool:
    lowered = text.lower()
    return not any(word.lower() in lowered for word in FORBIDDEN_STATUS_WORDS)


def status_text(status: RAGStatus | str) -> str:
    """Return the user-facing label for a status.

    Raises ValueError if the configured label uses forbidden wording.
    """
    key = status.value if isinstance(status, RAGStatus) else str(status)
    label = STATUS_LABELS[key]
    if not uses_approved_language(label):
        raise ValueError(f"Status label {label!r} uses wording that must not be shown")
    return label


def status_card(status: RAGStatus) -> dict:
    """Dict used by the front end to colour and caption a KPI card."""
    return {
        "status": status.value,
        "label": status.label,
        "css_class": status.css_class,
    }
