"""
Tests for store module
Tests settings, orders, production batches, users and dashboard notes in SQLite
"""

from datetime import date

import pytest

from boxworks_dashboard import store
from boxworks_dashboard.config import PAGE_NOTE_ROLES, ROLES
from boxworks_dashboard.records import (
    DashboardNote,
    Order,
    OverCostReason,
    ProductionBatch,
    Settings,
    SettingsError,
)


def _order(day, qty=1, rep_id=None):
    return Order(
        date=day, boxes_qty=qty, rrp_total=1400.0 * qty, net_total=1400.0 * qty,
        build_cost_total=700.0 * qty, sales_rep_id=rep_id,
    )


class TestSettings:
    """Test the single settings row"""

    def test_default_targets_sum_to_yearly_target(self):
        settings = Settings()
        assert sum(settings.monthly_box_targets.values()) == settings.yearly_box_target
        settings.validate()

    def test_defaults_written_on_first_load(self, conn):
        settings = store.load_settings(conn)
        assert settings == Settings()
        assert store.load_settings(conn) == settings

    def test_save_and_load(self, conn):
        targets = {m: 10 for m in Settings().monthly_box_targets}
        custom = Settings(
            baseline_floor_per_box=650.0,
            yearly_box_target=120,
            amber_floor_fraction=0.8,
            monthly_box_targets=targets,
            install_capacity_per_week=10,
            fiscal_year_start_month=4,
        )
        store.save_settings(conn, custom)
        assert store.load_settings(conn) == custom

    def test_targets_must_sum_to_yearly(self, conn):
        bad = Settings(yearly_box_target=901)
        with pytest.raises(SettingsError, match=r"Monthly targets \(900\) must sum to yearly target \(901\)"):
            store.save_settings(conn, bad)

    @pytest.mark.parametrize("field, value", [
        ("amber_floor_fraction", 1.0),
        ("amber_floor_fraction", 0.0),
        ("fiscal_year_start_month", 13),
        ("baseline_floor_per_box", -1.0),
    ])
    def test_invalid_values_rejected(self, conn, field, value):
        settings = Settings()
        setattr(settings, field, value)
        with pytest.raises(SettingsError):
            store.save_settings(conn, settings)

    def test_unknown_month_rejected(self):
        with pytest.raises(SettingsError):
            Settings(yearly_box_target=5, monthly_box_targets={"July": 5}).validate()


class TestUsers:
    """Test user accounts and sales-rep lookup"""

    def test_email_lookup_is_case_insensitive(self, conn):
        rep_id = store.add_user(conn, "Alice", "Alice@Example.com", "sales")
        assert store.find_sales_rep_id(conn, " ALICE@example.com ") == rep_id

    def test_only_sales_accounts_match(self, conn):
        store.add_user(conn, "Diana", "diana@example.com", "director")
        assert store.find_sales_rep_id(conn, "diana@example.com") is None

    def test_unknown_role(self, conn):
        with pytest.raises(ValueError):
            store.add_user(conn, "Eve", "eve@example.com", "admin")

    def test_load_users_by_role(self, conn_with_reps):
        reps = store.load_users(conn_with_reps, role="sales")
        assert reps["email"].tolist() == ["alice@example.com"]
        assert len(store.load_users(conn_with_reps)) == 2

    def test_missing_fields(self, conn):
        with pytest.raises(ValueError, match="required"):
            store.add_user(conn, " ", "x@example.com", "sales")

    def test_duplicate_email(self, conn_with_reps):
        with pytest.raises(ValueError, match="Email already exists"):
            store.add_user(conn_with_reps, "Other Alice", "ALICE@example.com", "sales")

    def test_update_user(self, conn_with_reps):
        user_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        assert store.update_user(conn_with_reps, user_id, "Alice Director", "alice@example.com", "director")
        assert store.get_user(conn_with_reps, user_id)["role"] == "director"
        assert store.find_sales_rep_id(conn_with_reps, "alice@example.com") is None
        assert not store.update_user(conn_with_reps, 999, "Nobody", "nobody@example.com", "sales")

    def test_update_to_taken_email(self, conn_with_reps):
        user_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        with pytest.raises(ValueError, match="Email already exists"):
            store.update_user(conn_with_reps, user_id, "Alice", "charlie@example.com", "sales")

    def test_deleting_rep_keeps_orders(self, conn_with_reps):
        rep_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        order_id = store.insert_order(conn_with_reps, _order(date(2025, 10, 1), rep_id=rep_id))

        assert store.delete_user(conn_with_reps, rep_id)
        assert store.get_user(conn_with_reps, rep_id) is None
        order = store.get_order(conn_with_reps, order_id)
        assert order.sales_rep_id is None
        assert order.sales_rep_name is None


class TestOrders:
    """Test order persistence"""

    def test_insert_and_get(self, conn_with_reps):
        rep_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        order = _order(date(2025, 10, 1), qty=2, rep_id=rep_id)
        order.reference = "ORD-1"
        order_id = store.insert_order(conn_with_reps, order)

        loaded = store.get_order(conn_with_reps, order_id)
        assert loaded.id == order_id
        assert loaded.boxes_qty == 2
        assert loaded.reference == "ORD-1"
        assert loaded.sales_rep_email == "alice@example.com"
        assert loaded.sales_rep_name == "Alice Sales"

    def test_missing_order(self, conn):
        assert store.get_order(conn, 1) is None

    def test_load_filters(self, conn_with_reps):
        rep_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        store.insert_order(conn_with_reps, _order(date(2025, 9, 30)))
        store.insert_order(conn_with_reps, _order(date(2025, 10, 1), rep_id=rep_id))
        store.insert_order(conn_with_reps, _order(date(2025, 10, 31)))

        october = store.load_orders(conn_with_reps, date(2025, 10, 1), date(2025, 10, 31))
        assert [o.date for o in october] == [date(2025, 10, 31), date(2025, 10, 1)]

        mine = store.load_orders(conn_with_reps, sales_rep_id=rep_id)
        assert len(mine) == 1
        assert mine[0].sales_rep_id == rep_id

    def test_update_unknown_returns_false(self, conn):
        order = _order(date(2025, 10, 1))
        order.id = 99
        assert store.update_order(conn, order) is False

    def test_duplicate(self, conn_with_reps):
        rep_id = store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        order = _order(date(2025, 10, 1), qty=3)
        order.reference = "ORD-7"
        order.notes = "rush"
        order_id = store.insert_order(conn_with_reps, order)

        copy_id = store.duplicate_order(conn_with_reps, order_id, on_date=date(2025, 10, 2), sales_rep_id=rep_id)
        copy = store.get_order(conn_with_reps, copy_id)
        assert copy_id != order_id
        assert copy.boxes_qty == 3
        assert copy.date == date(2025, 10, 2)
        assert copy.reference == "ORD-7 (copy)"
        assert copy.notes == "rush (duplicated)"
        assert copy.sales_rep_id == rep_id
        assert store.get_order(conn_with_reps, order_id).reference == "ORD-7"

    def test_duplicate_defaults_to_today(self, conn):
        order_id = store.insert_order(conn, _order(date(2025, 10, 1)))
        copy = store.get_order(conn, store.duplicate_order(conn, order_id))
        assert copy.date == date.today()
        assert copy.reference is None
        assert store.duplicate_order(conn, 999) is None

    def test_delete(self, conn):
        order_id = store.insert_order(conn, _order(date(2025, 10, 1)))
        assert store.delete_order(conn, order_id)
        assert not store.delete_order(conn, order_id)

    def test_transaction_rolls_back(self, conn):
        with pytest.raises(RuntimeError):
            with store.transaction(conn):
                store.insert_order(conn, _order(date(2025, 10, 1)))
                raise RuntimeError("abort")
        assert store.load_orders(conn) == []


class TestProduction:
    """Test production batch persistence"""

    def test_reasons_round_trip(self, conn):
        batch = ProductionBatch(
            date=date(2025, 10, 1), boxes_built=10, boxes_over_cost=3,
            over_cost_reasons=[OverCostReason("material", 2), OverCostReason("labour", 1)],
            rework_boxes=1, notes="note",
        )
        batch.id = store.insert_batch(conn, batch)
        assert store.get_batch(conn, batch.id) == batch

    def test_no_reasons(self, conn):
        batch_id = store.insert_batch(conn, ProductionBatch(date=date(2025, 10, 1), boxes_built=4))
        assert store.get_batch(conn, batch_id).over_cost_reasons == []

    def test_update_and_delete(self, conn):
        batch = ProductionBatch(date=date(2025, 10, 1), boxes_built=4)
        batch.id = store.insert_batch(conn, batch)
        batch.boxes_built = 6
        assert store.update_batch(conn, batch)
        assert store.get_batch(conn, batch.id).boxes_built == 6
        assert store.delete_batch(conn, batch.id)
        assert store.load_production(conn) == []

    def test_load_window(self, conn):
        store.insert_batch(conn, ProductionBatch(date=date(2025, 9, 30), boxes_built=1))
        store.insert_batch(conn, ProductionBatch(date=date(2025, 10, 1), boxes_built=2))
        october = store.load_production(conn, start=date(2025, 10, 1))
        assert [b.boxes_built for b in october] == [2]


class TestNotes:
    """Test dashboard notes"""

    def test_missing_note_is_blank(self, conn):
        assert store.get_note(conn, "2025/26", "Oct", "sales") == ""

    def test_save_overwrites(self, conn):
        store.save_note(conn, DashboardNote("2025/26", "Oct", "sales", "first"))
        store.save_note(conn, DashboardNote("2025/26", "Oct", "sales", "second"))
        assert store.get_note(conn, "2025/26", "Oct", "sales") == "second"
        assert store.get_note(conn, "2025/26", "Oct", "production") == ""

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            DashboardNote("2025/26", "Oct", "admin", "x")

    def test_pages_use_their_own_role_note(self, conn):
        """A director on the Sales page sees the sales note, not the director's"""
        store.save_note(conn, DashboardNote("2025/26", "Oct", "sales", "sales note"))
        store.save_note(conn, DashboardNote("2025/26", "Oct", "director", "director note"))

        assert PAGE_NOTE_ROLES["Sales Dashboard"] == "sales"
        assert PAGE_NOTE_ROLES["Production Dashboard"] == "production"
        note_role = PAGE_NOTE_ROLES["Sales Dashboard"]
        assert store.get_note(conn, "2025/26", "Oct", note_role) == "sales note"
        assert set(PAGE_NOTE_ROLES.values()) == set(ROLES)


class TestSessionConnection:
    """Test one connection per browser session"""

    def test_reused_within_a_session(self, tmp_path):
        state = {}
        path = tmp_path / "boxworks.db"
        first = store.session_connection(state, path)
        assert store.session_connection(state, path) is first
        first.close()

    def test_sessions_do_not_share_transactions(self, tmp_path):
        path = tmp_path / "boxworks.db"
        session_a, session_b = {}, {}
        conn_a = store.session_connection(session_a, path)
        conn_b = store.session_connection(session_b, path)
        assert conn_a is not conn_b

        # Session A sits inside an open transaction while B writes
        conn_a.execute("BEGIN")
        with store.transaction(conn_b):
            store.insert_order(conn_b, _order(date(2025, 10, 1)))
        conn_a.execute("ROLLBACK")

        assert len(store.load_orders(conn_a)) == 1
        conn_a.close()
        conn_b.close()
