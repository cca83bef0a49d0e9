"""
Boxworks — End-to-end analytics pipeline.

Seeds a throwaway database with simulated data, runs the sales and
production aggregations for the current fiscal month and prints
smoke-test summaries.

Usage:
    python main.py
"""

import io
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from boxworks_dashboard import store
from boxworks_dashboard.dashboard import (
    get_available_periods,
    get_director_overview,
    get_monthly_trend,
)
from boxworks_dashboard.fiscal import date_range_of
from boxworks_dashboard.importer import import_orders
from boxworks_dashboard.loaders import (
    format_orders_for_export,
    template_frame,
    to_csv_bytes,
)
from boxworks_dashboard.simulator import seed_demo_data

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Run the full analytics pipeline and print smoke-test outputs."""

    print("=" * 70)
    print("  BOXWORKS — Sales & Production Dashboard")
    print("  Analytics Pipeline Smoke Test")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Seed source data
    # ------------------------------------------------------------------
    print("[ 1 ] SEEDING SOURCE DATA")
    print("-" * 40)

    conn = store.connect(":memory:")
    counts = seed_demo_data(conn)
    print(f"\nSeeded: {counts}")

    settings = store.load_settings(conn)
    orders = store.load_orders(conn)
    batches = store.load_production(conn)

    # ------------------------------------------------------------------
    # 2. Dashboard outputs
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] DASHBOARD OUTPUTS")
    print("-" * 40)

    periods = get_available_periods(settings)
    fy, month = periods["default_fy"], periods["default_month"]
    print(f"\nFiscal years: {periods['fiscal_years']}")
    print(f"Selected period: {fy} {month} {date_range_of(fy, month, settings.fiscal_year_start_month)}")

    overview = get_director_overview(orders, batches, settings, fy, month)
    for role in ("sales", "production"):
        print(f"\n{role.title()} status:")
        for card, status in overview[role]["status"].items():
            print(f"  {card:16s} | {status['label']}")
    print(f"\nConsolidated: {overview['consolidated']}")

    trend = get_monthly_trend(orders, batches, settings, fy)
    print(f"\nMonthly trend — {fy}:")
    print(trend.to_string(index=False))

    # ------------------------------------------------------------------
    # 3. CSV round trip
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] CSV ROUND TRIP")
    print("-" * 40)

    export = format_orders_for_export(orders[:5])
    export["id"] = ""
    export["sales_rep_email"] = ""
    fresh = store.connect(":memory:")
    result = import_orders(fresh, io.BytesIO(to_csv_bytes(export)))
    print(f"\n{result.summary()}")
    for err in result.errors:
        print(f"  {err}")

    print("\nOrders template:")
    print(template_frame("orders").to_string(index=False))

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
