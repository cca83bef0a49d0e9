"""
Simulated data generator for the Boxworks dashboard.

Generates realistic orders and production batches for demos and smoke
runs. All values are synthetic — no real customer data is used.
"""

import logging
import sqlite3
from datetime import date, timedelta

import numpy as np

from . import store
from .records import Order, OverCostReason, ProductionBatch, Settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typical business parameters (realistic ranges)
# ---------------------------------------------------------------------------
_BOX_RRP = 1_400.0
_BOX_BUILD_COST = 700.0
_INSTALL_PRICE_PER_BOX = 250.0

_USERS = [
    ("Alice Sales", "alice@example.com", "sales"),
    ("Bob Sales", "bob@example.com", "sales"),
    ("Charlie Production", "charlie@example.com", "production"),
    ("Diana Director", "diana@example.com", "director"),
]

_OVER_COST_REASONS = ["material", "labour", "rework", "supplier price", "design change"]


def generate_orders(
    start: date,
    n_days: int = 180,
    sales_rep_ids: list[int] | None = None,
    seed: int = 42,
) -> list[Order]:
    """Generate roughly one order every other day from start."""
    rng = np.random.default_rng(seed)
    rep_ids = sales_rep_ids or [None]
    orders = []

    for offset in range(n_days):
        if rng.random() > 0.55:
            continue
        boxes = int(rng.integers(1, 5))
        rrp_total = boxes * _BOX_RRP
        discount = float(rng.choice([0.0, 0.0, 0.03, 0.05, 0.10]))
        net_total = round(rrp_total * (1 - discount), 2)
        build_cost = round(boxes * _BOX_BUILD_COST * rng.normal(1.0, 0.04), 2)
        with_install = rng.random() < 0.4

        orders.append(Order(
            date=start + timedelta(days=offset),
            reference=f"ORD-{len(orders) + 1:04d}",
            sales_rep_id=rep_ids[int(rng.integers(0, len(rep_ids)))],
            boxes_qty=boxes,
            rrp_total=rrp_total,
            net_total=net_total,
            build_cost_total=build_cost,
            install_revenue=boxes * _INSTALL_PRICE_PER_BOX if with_install else 0.0,
            extras_revenue=float(rng.choice([0.0, 0.0, 120.0, 300.0])),
        ))

    return orders


def generate_production(
    start: date,
    n_days: int = 180,
    seed: int = 7,
) -> list[ProductionBatch]:
    """Generate one build batch per working day from start."""
    rng = np.random.default_rng(seed)
    batches = []

    for offset in range(n_days):
        day = start + timedelta(days=offset)
        if day.weekday() >= 5:
            continue
        built = int(rng.integers(0, 6))
        over_cost = int(rng.binomial(built, 0.08)) if built else 0

        reasons = []
        if over_cost:
            reason = str(rng.choice(_OVER_COST_REASONS))
            reasons.append(OverCostReason(reason=reason, boxes=over_cost))

        batches.append(ProductionBatch(
            date=day,
            boxes_built=built,
            boxes_over_cost=over_cost,
            over_cost_reasons=reasons,
            rework_boxes=int(rng.binomial(built, 0.03)) if built else 0,
        ))

    return batches


def seed_demo_data(
    conn: sqlite3.Connection,
    today: date | None = None,
    n_days: int = 180,
) -> dict:
    """Fill an empty store with users, default settings, orders and batches.

    Returns counts of what was inserted.
    """
    today = today or date.today()
    start = today - timedelta(days=n_days - 1)

    with store.transaction(conn):
        rep_ids = []
        for name, email, role in _USERS:
            user_id = store.add_user(conn, name, email, role)
            if role == "sales":
                rep_ids.append(user_id)

        store.save_settings(conn, Settings())

        orders = generate_orders(start, n_days, rep_ids)
        for order in orders:
            store.insert_order(conn, order)

        batches = generate_production(start, n_days)
        for batch in batches:
            store.insert_batch(conn, batch)

    logger.info("Seeded %d orders and %d production batches", len(orders), len(batches))
    return {"users": len(_USERS), "orders": len(orders), "production": len(batches)}
