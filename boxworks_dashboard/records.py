"""
Typed records exchanged between the store, the CSV codec and the
aggregation engine.

JSON only appears at the persistence and CSV boundaries; everything in here
works with plain Python values.
"""

from dataclasses import dataclass, field
from datetime import date

from .config import (
    DEFAULT_AMBER_FLOOR_FRACTION,
    DEFAULT_BASELINE_FLOOR_PER_BOX,
    DEFAULT_FY_START_MONTH,
    DEFAULT_INSTALL_CAPACITY_PER_WEEK,
    DEFAULT_MONTHLY_BOX_TARGETS,
    DEFAULT_YEARLY_BOX_TARGET,
    MONTH_ABBREVIATIONS,
    ROLES,
)


class SettingsError(ValueError):
    """Raised when settings break a write-time invariant."""


@dataclass
class Order:
    date: date
    boxes_qty: int
    rrp_total: float
    net_total: float
    build_cost_total: float
    install_revenue: float = 0.0
    extras_revenue: float = 0.0
    reference: str | None = None
    sales_rep_id: int | None = None
    notes: str | None = None
    id: int | None = None
    # Joined in by the store for display and export
    sales_rep_email: str | None = None
    sales_rep_name: str | None = None


@dataclass
class OverCostReason:
    reason: str
    boxes: int

    def to_dict(self) -> dict:
        return {"reason": self.reason, "boxes": self.boxes}


@dataclass
class ProductionBatch:
    date: date
    boxes_built: int
    boxes_over_cost: int = 0
    over_cost_reasons: list[OverCostReason] = field(default_factory=list)
    rework_boxes: int = 0
    notes: str | None = None
    id: int | None = None


@dataclass
class Settings:
    baseline_floor_per_box: float = DEFAULT_BASELINE_FLOOR_PER_BOX
    yearly_box_target: int = DEFAULT_YEARLY_BOX_TARGET
    amber_floor_fraction: float = DEFAULT_AMBER_FLOOR_FRACTION
    monthly_box_targets: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_MONTHLY_BOX_TARGETS)
    )
    install_capacity_per_week: int = DEFAULT_INSTALL_CAPACITY_PER_WEEK
    fiscal_year_start_month: int = DEFAULT_FY_START_MONTH

    def validate(self) -> None:
        """Check the invariants enforced whenever settings are written.

        Raises SettingsError describing the first violation found.
        """
        unknown = sorted(set(self.monthly_box_targets) - set(MONTH_ABBREVIATIONS))
        if unknown:
            raise SettingsError(f"Unknown months in monthly targets: {', '.join(unknown)}")

        total = sum(int(v) for v in self.monthly_box_targets.values())
        if total != self.yearly_box_target:
            raise SettingsError(
                f"Monthly targets ({total}) must sum to yearly target ({self.yearly_box_target})"
            )
        if not 0 < self.amber_floor_fraction < 1:
            raise SettingsError(
                f"Amber floor must be between 0 and 1, got {self.amber_floor_fraction}"
            )
        if not 1 <= self.fiscal_year_start_month <= 12:
            raise SettingsError(
                f"Fiscal year start month must be 1-12, got {self.fiscal_year_start_month}"
            )
        if self.baseline_floor_per_box < 0:
            raise SettingsError("Baseline floor per box cannot be negative")
        if self.install_capacity_per_week < 0:
            raise SettingsError("Install capacity cannot be negative")


@dataclass
class DashboardNote:
    fy_label: str
    fy_month: str
    role: str
    note: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")
