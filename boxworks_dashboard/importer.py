"""
CSV import runner: validate rows with the codec and upsert them into the
record store.

Upsert rule: a row with a positive id updates that record (failing the row
when no such record exists); a row without one inserts a new record. The
fiscal period currently shown on a dashboard plays no part.

Transaction granularity is chosen by the caller:
    PER_ROW  — every row commits on its own; later problems never undo
               earlier rows.
    PER_FILE — one transaction for the whole file with a savepoint per row;
               row-level failures are skipped, an unexpected error rolls
               back the entire file.
"""

import logging
import sqlite3
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from . import store
from .loaders.csv_codec import (
    RowResult,
    data_row_number,
    read_orders_csv,
    read_production_csv,
    validate_order_row,
    validate_production_row,
)
from .records import Order, ProductionBatch

logger = logging.getLogger(__name__)


class TransactionPolicy(str, Enum):
    PER_ROW = "per_row"
    PER_FILE = "per_file"


@dataclass
class ImportResult:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: list[str] = field(default_factory=list)

    def fail(self, messages: list[str]) -> None:
        self.failed += 1
        self.errors.extend(messages)

    def summary(self) -> str:
        return f"Import completed: {self.succeeded} successful, {self.failed} failed"


def _resolve_sales_rep(conn: sqlite3.Connection, result: RowResult) -> str | None:
    """Fill in sales_rep_id from the row's e-mail. Returns an error message on a miss."""
    order: Order = result.record
    if not order.sales_rep_email:
        return None
    rep_id = store.find_sales_rep_id(conn, order.sales_rep_email)
    if rep_id is None:
        return f"Row {result.row_number}: Sales rep email not found: {order.sales_rep_email}"
    order.sales_rep_id = rep_id
    return None


def _upsert_order(conn: sqlite3.Connection, result: RowResult) -> str:
    order: Order = result.record
    if result.record_id is None:
        order.id = store.insert_order(conn, order)
        return "inserted"
    if not store.update_order(conn, order):
        raise LookupError(f"Row {result.row_number}: Order {result.record_id} not found")
    return "updated"


def _upsert_batch(conn: sqlite3.Connection, result: RowResult) -> str:
    batch: ProductionBatch = result.record
    if result.record_id is None:
        batch.id = store.insert_batch(conn, batch)
        return "inserted"
    if not store.update_batch(conn, batch):
        raise LookupError(f"Row {result.row_number}: Production entry {result.record_id} not found")
    return "updated"


def _run_import(
    conn: sqlite3.Connection,
    rows: list[dict],
    validate: Callable[[dict, int], RowResult],
    upsert: Callable[[sqlite3.Connection, RowResult], str],
    policy: TransactionPolicy,
    resolve: Callable[[sqlite3.Connection, RowResult], str | None] | None = None,
) -> ImportResult:
    result = ImportResult(total=len(rows))
    policy = TransactionPolicy(policy)

    file_scope = store.transaction(conn) if policy is TransactionPolicy.PER_FILE else nullcontext()
    with file_scope:
        for index, row in enumerate(rows):
            row_number = data_row_number(index)
            checked = validate(row, row_number)
            if not checked.valid:
                result.fail(checked.errors)
                continue

            if resolve is not None:
                miss = resolve(conn, checked)
                if miss:
                    result.fail([miss])
                    continue

            row_scope = (
                store.savepoint(conn) if policy is TransactionPolicy.PER_FILE
                else store.transaction(conn)
            )
            try:
                with row_scope:
                    outcome = upsert(conn, checked)
            except LookupError as exc:
                result.fail([str(exc)])
                continue
            except sqlite3.Error as exc:
                logger.warning("Row %d rejected by the database: %s", row_number, exc)
                result.fail([f"Row {row_number}: Database error - {exc}"])
                continue

            result.succeeded += 1
            if outcome == "inserted":
                result.inserted += 1
            else:
                result.updated += 1

    logger.info(
        "%s (%d inserted, %d updated)", result.summary(), result.inserted, result.updated
    )
    return result


def import_orders(
    conn: sqlite3.Connection,
    source: Any,
    policy: TransactionPolicy = TransactionPolicy.PER_ROW,
) -> ImportResult:
    """Import an orders CSV (path or file-like object).

    Raises CSVStructureError before touching the store when the header is
    missing a required column.
    """
    rows = read_orders_csv(source)
    return _run_import(conn, rows, validate_order_row, _upsert_order, policy, _resolve_sales_rep)


def import_production(
    conn: sqlite3.Connection,
    source: Any,
    policy: TransactionPolicy = TransactionPolicy.PER_ROW,
) -> ImportResult:
    """Import a production CSV (path or file-like object)."""
    rows = read_production_csv(source)
    return _run_import(conn, rows, validate_production_row, _upsert_batch, policy)
