"""
SQLite record store: the persistence boundary for orders, production
batches, settings, users and dashboard notes.

Loads go through pandas.read_sql_query and come back as typed records.
Write helpers never commit on their own; wrap them in transaction() (or
rely on autocommit for a single statement).
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date
from pathlib import Path

import pandas as pd

from .config import DB_PATH, ROLES
from .loaders.csv_codec import parse_reasons, reasons_to_json
from .records import DashboardNote, Order, ProductionBatch, Settings

logger = logging.getLogger(__name__)

_SESSION_KEY = "boxworks_conn"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('sales', 'production', 'director')),
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    baseline_floor_per_box REAL NOT NULL,
    yearly_box_target INTEGER NOT NULL,
    rag_amber_floor_pct REAL NOT NULL,
    monthly_box_targets_json TEXT NOT NULL,
    install_capacity_high_season_per_week INTEGER NOT NULL,
    fy_start_month INTEGER NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_date TEXT NOT NULL,
    order_ref TEXT,
    sales_rep_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
    boxes_qty INTEGER NOT NULL CHECK (boxes_qty >= 1),
    box_rrp_total REAL NOT NULL,
    box_net_total REAL NOT NULL,
    box_build_cost_total REAL NOT NULL,
    install_revenue REAL DEFAULT 0,
    extras_revenue REAL DEFAULT 0,
    notes TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS production_batches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    production_date TEXT NOT NULL,
    boxes_built INTEGER NOT NULL CHECK (boxes_built >= 0),
    boxes_over_cost INTEGER DEFAULT 0 CHECK (boxes_over_cost >= 0),
    over_cost_reasons_json TEXT,
    rework_boxes INTEGER DEFAULT 0 CHECK (rework_boxes >= 0),
    notes TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS dashboard_notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    fy_label TEXT NOT NULL,
    fy_month TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('sales', 'production', 'director')),
    note TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (fy_label, fy_month, role)
);

CREATE INDEX IF NOT EXISTS idx_orders_order_date ON orders(order_date);
CREATE INDEX IF NOT EXISTS idx_orders_sales_rep_id ON orders(sales_rep_id);
CREATE INDEX IF NOT EXISTS idx_production_batches_date ON production_batches(production_date);
"""

_ORDER_SELECT = """
SELECT o.*, u.email AS sales_rep_email, u.name AS sales_rep_name
FROM orders o
LEFT JOIN users u ON o.sales_rep_id = u.id
"""


# ---------------------------------------------------------------------------
# Connection & transactions
# ---------------------------------------------------------------------------

def connect(path: str | Path = DB_PATH) -> sqlite3.Connection:
    """Open a connection in autocommit mode and make sure the schema exists.

    Pass ":memory:" for a throwaway database.
    """
    conn = sqlite3.connect(str(path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    init_schema(conn)
    logger.info("Opened record store at %s", path)
    return conn


def session_connection(state, path: str | Path = DB_PATH) -> sqlite3.Connection:
    """Return the connection kept in a per-session mapping, opening it on first use.

    Every browser session holds its own connection so one session's open
    transaction never captures another's writes.
    """
    if _SESSION_KEY not in state:
        state[_SESSION_KEY] = connect(path)
    return state[_SESSION_KEY]


def init_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA)


@contextmanager
def transaction(conn: sqlite3.Connection):
    """BEGIN ... COMMIT, rolling back if the block raises."""
    conn.execute("BEGIN")
    try:
        yield conn
    except Exception:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


@contextmanager
def savepoint(conn: sqlite3.Connection, name: str = "row"):
    """Nested unit of work inside an open transaction."""
    conn.execute(f"SAVEPOINT {name}")
    try:
        yield conn
    except Exception:
        conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
        conn.execute(f"RELEASE SAVEPOINT {name}")
        raise
    conn.execute(f"RELEASE SAVEPOINT {name}")


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _iso(d: date | None) -> str | None:
    return d.isoformat() if d is not None else None


def _optional_int(val) -> int | None:
    return None if pd.isna(val) else int(val)


def _optional_text(val) -> str | None:
    return None if pd.isna(val) else str(val)


def _number(val, default: float = 0.0) -> float:
    return default if pd.isna(val) else float(val)


def _fetchone(conn: sqlite3.Connection, query: str, params: tuple) -> dict | None:
    cur = conn.execute(query, params)
    row = cur.fetchone()
    if row is None:
        return None
    return dict(zip([col[0] for col in cur.description], row))


def _order_from_row(row: dict) -> Order:
    return Order(
        id=int(row["id"]),
        date=date.fromisoformat(row["order_date"]),
        reference=_optional_text(row.get("order_ref")),
        sales_rep_id=_optional_int(row.get("sales_rep_id")),
        boxes_qty=int(row["boxes_qty"]),
        rrp_total=float(row["box_rrp_total"]),
        net_total=float(row["box_net_total"]),
        build_cost_total=float(row["box_build_cost_total"]),
        install_revenue=_number(row.get("install_revenue")),
        extras_revenue=_number(row.get("extras_revenue")),
        notes=_optional_text(row.get("notes")),
        sales_rep_email=_optional_text(row.get("sales_rep_email")),
        sales_rep_name=_optional_text(row.get("sales_rep_name")),
    )


def _batch_from_row(row: dict) -> ProductionBatch:
    return ProductionBatch(
        id=int(row["id"]),
        date=date.fromisoformat(row["production_date"]),
        boxes_built=int(row["boxes_built"]),
        boxes_over_cost=int(_number(row.get("boxes_over_cost"))),
        over_cost_reasons=parse_reasons(_optional_text(row.get("over_cost_reasons_json"))),
        rework_boxes=int(_number(row.get("rework_boxes"))),
        notes=_optional_text(row.get("notes")),
    )


def _date_filters(column: str, start: date | None, end: date | None) -> tuple[list[str], list]:
    clauses, params = [], []
    if start is not None:
        clauses.append(f"{column} >= ?")
        params.append(_iso(start))
    if end is not None:
        clauses.append(f"{column} <= ?")
        params.append(_iso(end))
    return clauses, params


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def _check_user(name: str, email: str, role: str) -> None:
    if not (name or "").strip() or not (email or "").strip() or not role:
        raise ValueError("Name, email and role are required")
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")


def add_user(conn: sqlite3.Connection, name: str, email: str, role: str) -> int:
    """Create an account. Raises ValueError for missing fields or a taken e-mail."""
    _check_user(name, email, role)
    try:
        cur = conn.execute(
            "INSERT INTO users (name, email, role) VALUES (?, ?, ?)",
            (name.strip(), email.strip().lower(), role),
        )
    except sqlite3.IntegrityError as exc:
        raise ValueError("Email already exists") from exc
    logger.info("Added %s user %s", role, email)
    return cur.lastrowid


def get_user(conn: sqlite3.Connection, user_id: int) -> dict | None:
    return _fetchone(conn, "SELECT id, name, email, role FROM users WHERE id = ?", (user_id,))


def update_user(conn: sqlite3.Connection, user_id: int, name: str, email: str, role: str) -> bool:
    """Overwrite an account. Returns False when the id is unknown."""
    _check_user(name, email, role)
    try:
        cur = conn.execute(
            "UPDATE users SET name = ?, email = ?, role = ? WHERE id = ?",
            (name.strip(), email.strip().lower(), role, user_id),
        )
    except sqlite3.IntegrityError as exc:
        raise ValueError("Email already exists") from exc
    return cur.rowcount > 0


def delete_user(conn: sqlite3.Connection, user_id: int) -> bool:
    """Remove an account; their orders stay, with no sales rep."""
    return conn.execute("DELETE FROM users WHERE id = ?", (user_id,)).rowcount > 0


def find_sales_rep_id(conn: sqlite3.Connection, email: str) -> int | None:
    """Return the id of the sales account with this e-mail, if any."""
    row = _fetchone(
        conn,
        "SELECT id FROM users WHERE email = ? AND role = 'sales'",
        (email.strip().lower(),),
    )
    return row["id"] if row else None


def load_users(conn: sqlite3.Connection, role: str | None = None) -> pd.DataFrame:
    query = "SELECT id, name, email, role FROM users"
    params: list = []
    if role is not None:
        query += " WHERE role = ?"
        params.append(role)
    return pd.read_sql_query(query + " ORDER BY name", conn, params=params)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def save_settings(conn: sqlite3.Connection, settings: Settings) -> None:
    """Validate and store the single settings row."""
    settings.validate()
    conn.execute(
        """
        INSERT INTO settings (
            id, baseline_floor_per_box, yearly_box_target, rag_amber_floor_pct,
            monthly_box_targets_json, install_capacity_high_season_per_week, fy_start_month
        ) VALUES (1, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            baseline_floor_per_box = excluded.baseline_floor_per_box,
            yearly_box_target = excluded.yearly_box_target,
            rag_amber_floor_pct = excluded.rag_amber_floor_pct,
            monthly_box_targets_json = excluded.monthly_box_targets_json,
            install_capacity_high_season_per_week = excluded.install_capacity_high_season_per_week,
            fy_start_month = excluded.fy_start_month,
            updated_at = CURRENT_TIMESTAMP
        """,
        (
            float(settings.baseline_floor_per_box),
            int(settings.yearly_box_target),
            float(settings.amber_floor_fraction),
            json.dumps(settings.monthly_box_targets),
            int(settings.install_capacity_per_week),
            int(settings.fiscal_year_start_month),
        ),
    )
    logger.info("Saved settings")


def load_settings(conn: sqlite3.Connection) -> Settings:
    """Return the stored settings, writing the defaults on first use."""
    row = _fetchone(conn, "SELECT * FROM settings WHERE id = 1", ())
    if row is None:
        logger.warning("No settings stored, writing defaults")
        settings = Settings()
        save_settings(conn, settings)
        return settings

    return Settings(
        baseline_floor_per_box=float(row["baseline_floor_per_box"]),
        yearly_box_target=int(row["yearly_box_target"]),
        amber_floor_fraction=float(row["rag_amber_floor_pct"]),
        monthly_box_targets={k: int(v) for k, v in json.loads(row["monthly_box_targets_json"]).items()},
        install_capacity_per_week=int(row["install_capacity_high_season_per_week"]),
        fiscal_year_start_month=int(row["fy_start_month"]),
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def load_orders(
    conn: sqlite3.Connection,
    start: date | None = None,
    end: date | None = None,
    sales_rep_id: int | None = None,
) -> list[Order]:
    """Load orders, newest first, optionally limited to a date window or rep."""
    clauses, params = _date_filters("o.order_date", start, end)
    if sales_rep_id is not None:
        clauses.append("o.sales_rep_id = ?")
        params.append(sales_rep_id)

    query = _ORDER_SELECT
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY o.order_date DESC, o.id DESC"

    df = pd.read_sql_query(query, conn, params=params)
    orders = [_order_from_row(row) for row in df.to_dict("records")]
    logger.info("Loaded %d orders", len(orders))
    return orders


def get_order(conn: sqlite3.Connection, order_id: int) -> Order | None:
    row = _fetchone(conn, _ORDER_SELECT + " WHERE o.id = ?", (order_id,))
    return _order_from_row(row) if row else None


def _order_params(order: Order) -> tuple:
    return (
        _iso(order.date),
        order.reference,
        order.sales_rep_id,
        int(order.boxes_qty),
        float(order.rrp_total),
        float(order.net_total),
        float(order.build_cost_total),
        float(order.install_revenue or 0),
        float(order.extras_revenue or 0),
        order.notes,
    )


def insert_order(conn: sqlite3.Connection, order: Order) -> int:
    cur = conn.execute(
        """
        INSERT INTO orders (
            order_date, order_ref, sales_rep_id, boxes_qty,
            box_rrp_total, box_net_total, box_build_cost_total,
            install_revenue, extras_revenue, notes
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        _order_params(order),
    )
    return cur.lastrowid


def update_order(conn: sqlite3.Connection, order: Order) -> bool:
    """Overwrite an existing order. Returns False when the id is unknown."""
    cur = conn.execute(
        """
        UPDATE orders SET
            order_date = ?, order_ref = ?, sales_rep_id = ?, boxes_qty = ?,
            box_rrp_total = ?, box_net_total = ?, box_build_cost_total = ?,
            install_revenue = ?, extras_revenue = ?, notes = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        """,
        _order_params(order) + (order.id,),
    )
    return cur.rowcount > 0


def delete_order(conn: sqlite3.Connection, order_id: int) -> bool:
    return conn.execute("DELETE FROM orders WHERE id = ?", (order_id,)).rowcount > 0


def duplicate_order(
    conn: sqlite3.Connection,
    order_id: int,
    on_date: date | None = None,
    sales_rep_id: int | None = None,
) -> int | None:
    """Copy an order onto on_date (default today). Returns the new id.

    The copy's reference and notes are marked as copies; pass sales_rep_id
    to credit the copy to the rep who made it.
    """
    order = get_order(conn, order_id)
    if order is None:
        return None
    order.id = None
    order.date = on_date or date.today()
    if order.reference:
        order.reference = f"{order.reference} (copy)"
    if order.notes:
        order.notes = f"{order.notes} (duplicated)"
    if sales_rep_id is not None:
        order.sales_rep_id = sales_rep_id
    return insert_order(conn, order)


# ---------------------------------------------------------------------------
# Production
# ---------------------------------------------------------------------------

def load_production(
    conn: sqlite3.Connection,
    start: date | None = None,
    end: date | None = None,
) -> list[ProductionBatch]:
    clauses, params = _date_filters("production_date", start, end)
    query = "SELECT * FROM production_batches"
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY production_date DESC, id DESC"

    df = pd.read_sql_query(query, conn, params=params)
    batches = [_batch_from_row(row) for row in df.to_dict("records")]
    logger.info("Loaded %d production batches", len(batches))
    return batches


def get_batch(conn: sqlite3.Connection, batch_id: int) -> ProductionBatch | None:
    row = _fetchone(conn, "SELECT * FROM production_batches WHERE id = ?", (batch_id,))
    return _batch_from_row(row) if row else None


def _batch_params(batch: ProductionBatch) -> tuple:
    return (
        _iso(batch.date),
        int(batch.boxes_built),
        int(batch.boxes_over_cost or 0),
        reasons_to_json(batch.over_cost_reasons) if batch.over_cost_reasons else None,
        int(batch.rework_boxes or 0),
        batch.notes,
    )


def insert_batch(conn: sqlite3.Connection, batch: ProductionBatch) -> int:
    cur = conn.execute(
        """
        INSERT INTO production_batches (
            production_date, boxes_built, boxes_over_cost,
            over_cost_reasons_json, rework_boxes, notes
        ) VALUES (?, ?, ?, ?, ?, ?)
        """,
        _batch_params(batch),
    )
    return cur.lastrowid


def update_batch(conn: sqlite3.Connection, batch: ProductionBatch) -> bool:
    cur = conn.execute(
        """
        UPDATE production_batches SET
            production_date = ?, boxes_built = ?, boxes_over_cost = ?,
            over_cost_reasons_json = ?, rework_boxes = ?, notes = ?,
            updated_at = CURRENT_TIMESTAMP
        WHERE id = ?
        """,
        _batch_params(batch) + (batch.id,),
    )
    return cur.rowcount > 0


def delete_batch(conn: sqlite3.Connection, batch_id: int) -> bool:
    return conn.execute("DELETE FROM production_batches WHERE id = ?", (batch_id,)).rowcount > 0


# ---------------------------------------------------------------------------
# Dashboard notes
# ---------------------------------------------------------------------------

def get_note(conn: sqlite3.Connection, fy_label: str, fy_month: str, role: str) -> str:
    row = _fetchone(
        conn,
        "SELECT note FROM dashboard_notes WHERE fy_label = ? AND fy_month = ? AND role = ?",
        (fy_label, fy_month, role),
    )
    return row["note"] if row else ""


def save_note(conn: sqlite3.Connection, note: DashboardNote) -> None:
    """Insert or replace the note for (fiscal year, month, role)."""
    conn.execute(
        """
        INSERT INTO dashboard_notes (fy_label, fy_month, role, note)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (fy_label, fy_month, role)
        DO UPDATE SET note = excluded.note, updated_at = CURRENT_TIMESTAMP
        """,
        (note.fy_label, note.fy_month, note.role, note.note),
    )
