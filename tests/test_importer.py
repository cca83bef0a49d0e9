"""
Tests for importer module
Tests CSV upserts, sales-rep resolution, row numbering and transaction policies
"""

import io
from datetime import date

import pytest

from boxworks_dashboard import store
from boxworks_dashboard.importer import ImportResult, TransactionPolicy, import_orders, import_production
from boxworks_dashboard.loaders import CSVStructureError
from boxworks_dashboard.records import Order, ProductionBatch

ORDER_HEADER = (
    "id,order_date,order_ref,sales_rep_email,boxes_qty,box_rrp_total,box_net_total,"
    "box_build_cost_total,install_revenue,extras_revenue,notes\n"
)


def _orders_buffer(*lines):
    return io.StringIO(ORDER_HEADER + "".join(line + "\n" for line in lines))


class TestImportOrders:
    """Test importing orders"""

    def test_valid_rows_insert_and_bad_rows_are_reported(self, conn_with_reps, orders_csv):
        result = import_orders(conn_with_reps, orders_csv)

        assert result.total == 3
        assert result.succeeded == 2
        assert result.failed == 1
        assert result.inserted == 2
        assert result.errors == ["Row 3: boxes_qty is required"]
        assert result.summary() == "Import completed: 2 successful, 1 failed"

        orders = store.load_orders(conn_with_reps)
        assert [o.reference for o in orders] == ["ORD-3", "ORD-1"]

    def test_rep_email_resolves_to_sales_account(self, conn_with_reps, orders_csv):
        import_orders(conn_with_reps, orders_csv)
        first = [o for o in store.load_orders(conn_with_reps) if o.reference == "ORD-1"][0]
        assert first.sales_rep_id == store.find_sales_rep_id(conn_with_reps, "alice@example.com")
        assert first.sales_rep_name == "Alice Sales"

    def test_unknown_rep_email_fails_row(self, conn_with_reps):
        buf = _orders_buffer(",2025-10-01,ORD-1,bob@example.com,1,1400,1400,700,,,")
        result = import_orders(conn_with_reps, buf)
        assert result.failed == 1
        assert result.errors == ["Row 2: Sales rep email not found: bob@example.com"]
        assert store.load_orders(conn_with_reps) == []

    def test_non_sales_account_is_not_a_rep(self, conn_with_reps):
        buf = _orders_buffer(",2025-10-01,ORD-1,charlie@example.com,1,1400,1400,700,,,")
        result = import_orders(conn_with_reps, buf)
        assert result.errors == ["Row 2: Sales rep email not found: charlie@example.com"]

    def test_id_updates_existing_order(self, conn_with_reps):
        order_id = store.insert_order(
            conn_with_reps,
            Order(date=date(2025, 10, 1), boxes_qty=1, rrp_total=1400.0, net_total=1400.0, build_cost_total=700.0),
        )
        buf = _orders_buffer(f"{order_id},2025-10-05,ORD-9,,3,4200,4000,2100,,,updated")
        result = import_orders(conn_with_reps, buf)

        assert result.updated == 1
        assert result.inserted == 0
        order = store.get_order(conn_with_reps, order_id)
        assert order.boxes_qty == 3
        assert order.date == date(2025, 10, 5)
        assert order.notes == "updated"
        assert len(store.load_orders(conn_with_reps)) == 1

    def test_unknown_id_fails_row(self, conn_with_reps):
        result = import_orders(conn_with_reps, _orders_buffer("999,2025-10-01,,,1,1400,1400,700,,,"))
        assert result.errors == ["Row 2: Order 999 not found"]
        assert store.load_orders(conn_with_reps) == []

    def test_non_positive_id_inserts(self, conn_with_reps):
        result = import_orders(conn_with_reps, _orders_buffer("0,2025-10-01,,,1,1400,1400,700,,,"))
        assert result.inserted == 1

    def test_missing_column_aborts_before_any_write(self, conn_with_reps):
        buf = io.StringIO("order_date,boxes_qty\n2025-10-01,1\n")
        with pytest.raises(CSVStructureError):
            import_orders(conn_with_reps, buf)
        assert store.load_orders(conn_with_reps) == []

    def test_row_numbers_count_the_header(self, conn_with_reps):
        buf = _orders_buffer(
            ",2025-10-01,,,1,1400,1400,700,,,",
            ",2025-10-02,,,1,1400,1400,700,,,",
            ",not-a-date,,,1,1400,1400,700,,,",
        )
        result = import_orders(conn_with_reps, buf)
        assert result.errors == ["Row 4: order_date must be a valid date (YYYY-MM-DD)"]

    def test_export_round_trip_updates_in_place(self, conn_with_reps, orders_csv):
        from boxworks_dashboard.loaders import format_orders_for_export, to_csv_bytes

        import_orders(conn_with_reps, orders_csv)
        before = store.load_orders(conn_with_reps)
        export = to_csv_bytes(format_orders_for_export(before))

        result = import_orders(conn_with_reps, io.BytesIO(export))
        assert result.updated == len(before)
        assert result.failed == 0
        assert store.load_orders(conn_with_reps) == before


class TestTransactionPolicies:
    """Test per-row and per-file commit behaviour"""

    @pytest.mark.parametrize("policy", list(TransactionPolicy))
    def test_failures_do_not_block_other_rows(self, conn_with_reps, policy):
        buf = _orders_buffer(
            ",2025-10-01,,,1,1400,1400,700,,,",
            "999,2025-10-02,,,1,1400,1400,700,,,",
            ",2025-10-03,,,1,1400,1400,700,,,",
        )
        result = import_orders(conn_with_reps, buf, policy)
        assert result.succeeded == 2
        assert result.failed == 1
        assert len(store.load_orders(conn_with_reps)) == 2

    def test_per_file_rolls_back_on_unexpected_error(self, conn_with_reps, monkeypatch):
        calls = []

        def flaky_insert(conn, order):
            calls.append(order)
            if len(calls) == 2:
                raise RuntimeError("disk gone")
            return original(conn, order)

        original = store.insert_order
        monkeypatch.setattr(store, "insert_order", flaky_insert)

        buf = _orders_buffer(
            ",2025-10-01,,,1,1400,1400,700,,,",
            ",2025-10-02,,,1,1400,1400,700,,,",
        )
        with pytest.raises(RuntimeError):
            import_orders(conn_with_reps, buf, TransactionPolicy.PER_FILE)
        assert store.load_orders(conn_with_reps) == []

    def test_per_row_keeps_earlier_rows_on_unexpected_error(self, conn_with_reps, monkeypatch):
        calls = []

        def flaky_insert(conn, order):
            calls.append(order)
            if len(calls) == 2:
                raise RuntimeError("disk gone")
            return original(conn, order)

        original = store.insert_order
        monkeypatch.setattr(store, "insert_order", flaky_insert)

        buf = _orders_buffer(
            ",2025-10-01,,,1,1400,1400,700,,,",
            ",2025-10-02,,,1,1400,1400,700,,,",
        )
        with pytest.raises(RuntimeError):
            import_orders(conn_with_reps, buf, TransactionPolicy.PER_ROW)
        assert len(store.load_orders(conn_with_reps)) == 1

    def test_policy_accepts_plain_string(self, conn_with_reps):
        result = import_orders(conn_with_reps, _orders_buffer(",2025-10-01,,,1,1400,1400,700,,,"), "per_file")
        assert result.succeeded == 1


class TestImportProduction:
    """Test importing production batches"""

    def test_mixed_file(self, conn, production_csv):
        result = import_production(conn, production_csv)
        assert result.succeeded == 2
        assert result.errors == ["Row 3: over_cost_reasons_json must be valid JSON"]

        batches = store.load_production(conn)
        assert batches[0].notes == "late"
        assert batches[1].over_cost_reasons[0].reason == "material"

    def test_unknown_id(self, conn):
        buf = io.StringIO("id,production_date,boxes_built\n42,2025-10-01,3\n")
        result = import_production(conn, buf)
        assert result.errors == ["Row 2: Production entry 42 not found"]

    def test_update_by_id(self, conn):
        batch_id = store.insert_batch(conn, ProductionBatch(date=date(2025, 10, 1), boxes_built=3))
        buf = io.StringIO(f"id,production_date,boxes_built,rework_boxes\n{batch_id},2025-10-01,4,1\n")
        result = import_production(conn, buf)
        assert result.updated == 1
        assert store.get_batch(conn, batch_id).rework_boxes == 1


class TestImportResult:
    """Test the result accumulator"""

    def test_fail_collects_messages(self):
        result = ImportResult(total=2)
        result.fail(["Row 2: a", "Row 2: b"])
        assert result.failed == 1
        assert result.errors == ["Row 2: a", "Row 2: b"]
