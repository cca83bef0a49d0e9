"""
Pytest configuration and shared fixtures for all tests
Centralized sample records, settings and in-memory stores
"""

import io
import os
import sys
from datetime import date

import pytest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from boxworks_dashboard import store
from boxworks_dashboard.records import Order, OverCostReason, ProductionBatch, Settings


# ===== SETTINGS =====

@pytest.fixture
def settings():
    """Default settings: floor 700, Oct target 80, amber at 90%."""
    return Settings()


# ===== RECORDS =====

@pytest.fixture
def scenario_order():
    """2 boxes, RRP 2800, net 2600, build cost 1400 -> 200 discount."""
    return Order(
        date=date(2025, 10, 10),
        boxes_qty=2,
        rrp_total=2800.0,
        net_total=2600.0,
        build_cost_total=1400.0,
    )


@pytest.fixture
def sample_orders():
    """
    Orders around October 2025 (FY 2025/26):
    - Three inside October, one with installs and extras
    - One late September order (outside the October window entirely)
    - One November order (outside October, after the month end)
    """
    return [
        Order(date=date(2025, 10, 1), boxes_qty=2, rrp_total=2800.0, net_total=2800.0,
              build_cost_total=1400.0, install_revenue=500.0, extras_revenue=200.0),
        Order(date=date(2025, 10, 15), boxes_qty=3, rrp_total=4200.0, net_total=3990.0,
              build_cost_total=2100.0),
        Order(date=date(2025, 10, 31), boxes_qty=1, rrp_total=1400.0, net_total=1260.0,
              build_cost_total=700.0, install_revenue=250.0),
        Order(date=date(2025, 9, 20), boxes_qty=4, rrp_total=5600.0, net_total=5600.0,
              build_cost_total=2800.0),
        Order(date=date(2025, 11, 3), boxes_qty=5, rrp_total=7000.0, net_total=7000.0,
              build_cost_total=3500.0),
    ]


@pytest.fixture
def sample_batches():
    """
    Production batches in October 2025 plus one in November:
    - 20 built in October, 2 over cost, 1 rework
    """
    return [
        ProductionBatch(
            date=date(2025, 10, 2),
            boxes_built=12,
            boxes_over_cost=1,
            over_cost_reasons=[OverCostReason("material", 1)],
            rework_boxes=1,
        ),
        ProductionBatch(
            date=date(2025, 10, 20),
            boxes_built=8,
            boxes_over_cost=1,
            over_cost_reasons=[OverCostReason("labour", 1)],
        ),
        ProductionBatch(date=date(2025, 11, 5), boxes_built=6),
    ]


# ===== STORES =====

@pytest.fixture
def conn():
    """Empty in-memory store with the schema created."""
    connection = store.connect(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def conn_with_reps(conn):
    """Store with one sales rep, one production user and default settings."""
    store.add_user(conn, "Alice Sales", "alice@example.com", "sales")
    store.add_user(conn, "Charlie Production", "charlie@example.com", "production")
    store.save_settings(conn, Settings())
    return conn


# ===== CSV BUFFERS =====

@pytest.fixture
def orders_csv():
    """
    Orders CSV with:
    - A valid row with a known rep e-mail
    - A row missing boxes_qty
    - A valid row with no rep
    """
    csv_data = (
        "order_date,order_ref,sales_rep_email,boxes_qty,box_rrp_total,box_net_total,"
        "box_build_cost_total,install_revenue,extras_revenue,notes\n"
        "2025-10-01,ORD-1,alice@example.com,2,2800,2600,1400,500,0,first\n"
        "2025-10-02,ORD-2,,,1400,1400,700,0,0,\n"
        "2025-10-03,ORD-3,,1,1400,1300,700,,,\n"
    )
    return io.StringIO(csv_data)


@pytest.fixture
def production_csv():
    """
    Production CSV with:
    - A valid row with one reason tag
    - A row with malformed reason JSON
    - A valid row with no reasons
    """
    csv_data = (
        "production_date,boxes_built,boxes_over_cost,over_cost_reasons_json,rework_boxes,notes\n"
        '2025-10-01,10,1,"[{""reason"": ""material"", ""boxes"": 1}]",0,\n'
        "2025-10-02,5,0,not json,0,\n"
        "2025-10-03,4,,,1,late\n"
    )
    return io.StringIO(csv_data)
