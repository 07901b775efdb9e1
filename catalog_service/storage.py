"""
Product store for the catalog service.

Products and the ledger of applied stock changes live in one SQLite file.
apply_stock_change() is the only path reconciliation uses to move stock: it
records the change's idempotency token and adjusts stock in the same
transaction, so a replayed token changes nothing. A restock can be tied to the
decrement it reverses and only moves stock if that decrement was applied.
"""

from __future__ import annotations

import sqlite3
from decimal import Decimal
from enum import Enum

from common.ids import now_iso
from common.models import Product
from common.storage import connection, init_db, transaction

SCHEMA = """
CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    price TEXT NOT NULL,
    stock INTEGER NOT NULL,
    variant TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS stock_changes (
    token TEXT PRIMARY KEY,
    product_id INTEGER NOT NULL,
    delta INTEGER NOT NULL,
    applied_at TEXT NOT NULL
);
"""

_COLUMNS = "id, name, description, price, stock, variant"


class StockChangeOutcome(str, Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    MISSING = "MISSING"
    NOT_APPLIED = "NOT_APPLIED"


def init_catalog_db(db_path: str) -> None:
    init_db(db_path, SCHEMA)


def _to_product(row: sqlite3.Row) -> Product:
    return Product(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        price=row["price"],
        stock=row["stock"],
        variant=row["variant"],
    )


def create_product(
    db_path: str,
    name: str,
    description: str,
    price: Decimal | str,
    stock: int,
    variant: str | None = None,
) -> Product:
    """
    Insert a product and return it with its id.

    >>> import tempfile
    >>> db = tempfile.mktemp(suffix=".db")
    >>> init_catalog_db(db)
    >>> create_product(db, "lamp", "desk lamp", "1200", 10).stock
    10
    """
    now = now_iso()
    with connection(db_path) as conn:
        cur = conn.execute(
            """
            INSERT INTO products (name, description, price, stock, variant, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (name, description, str(price), stock, variant, now, now),
        )
        product_id = cur.lastrowid
    return Product(id=product_id, name=name, description=description, price=str(price), stock=stock, variant=variant)


def find_product(db_path: str, product_id: int) -> Product | None:
    with connection(db_path) as conn:
        row = conn.execute(f"SELECT {_COLUMNS} FROM products WHERE id = ?", (product_id,)).fetchone()
    return _to_product(row) if row is not None else None


def find_products(db_path: str, limit: int = 10, offset: int = 0) -> list[Product]:
    with connection(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM products ORDER BY id LIMIT ? OFFSET ?",
            (limit, offset),
        ).fetchall()
    return [_to_product(r) for r in rows]


def find_stock(db_path: str, ids: list[int]) -> list[Product]:
    """Products for the given ids; unknown ids are simply absent from the result."""
    placeholders = ",".join("?" for _ in ids)
    with connection(db_path) as conn:
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM products WHERE id IN ({placeholders}) ORDER BY id",
            tuple(ids),
        ).fetchall()
    return [_to_product(r) for r in rows]


def update_product(db_path: str, product: Product) -> Product:
    """Overwrite every mutable column of an existing product. Raises LookupError if it is gone."""
    with connection(db_path) as conn:
        cur = conn.execute(
            """
            UPDATE products
            SET name = ?, description = ?, price = ?, stock = ?, variant = ?, updated_at = ?
            WHERE id = ?
            """,
            (product.name, product.description, product.price, product.stock, product.variant, now_iso(), product.id),
        )
        if cur.rowcount == 0:
            raise LookupError(f"product {product.id} does not exist")
    return product


def delete_product(db_path: str, product_id: int) -> bool:
    with connection(db_path) as conn:
        cur = conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
    return cur.rowcount > 0


def _recorded_delta(conn: sqlite3.Connection, token: str) -> int | None:
    row = conn.execute("SELECT delta FROM stock_changes WHERE token = ?", (token,)).fetchone()
    return row["delta"] if row is not None else None


def apply_stock_change(
    db_path: str,
    product_id: int,
    delta: int,
    token: str | None = None,
    requires: str | None = None,
    blocked_by: str | None = None,
) -> tuple[StockChangeOutcome, Product | None]:
    """
    Add delta (negative to decrement) to a product's stock.

    With a token, the change is recorded in stock_changes in the same
    transaction; a token seen before returns DUPLICATE and leaves stock alone.
    The change only moves stock if the ``requires`` token was recorded with a
    non-zero delta and the ``blocked_by`` token was never recorded; otherwise
    the token is recorded with delta 0 and NOT_APPLIED is returned, so a
    restock never gives back more than was taken. Stock is not clamped at zero.

    >>> import tempfile
    >>> db = tempfile.mktemp(suffix=".db")
    >>> init_catalog_db(db)
    >>> p = create_product(db, "lamp", "desk lamp", "1200", 10)
    >>> apply_stock_change(db, p.id, 3, token="restock", requires="take")[0].value
    'NOT_APPLIED'
    >>> apply_stock_change(db, p.id, -3, token="take", blocked_by="restock")[0].value
    'NOT_APPLIED'
    >>> apply_stock_change(db, p.id, -3, token="t-1")[1].stock
    7
    >>> apply_stock_change(db, p.id, -3, token="t-1")[0].value
    'DUPLICATE'
    """
    with transaction(db_path) as conn:
        row = conn.execute(f"SELECT {_COLUMNS} FROM products WHERE id = ?", (product_id,)).fetchone()
        if row is None:
            return StockChangeOutcome.MISSING, None
        product = _to_product(row)

        if token is not None:
            if _recorded_delta(conn, token) is not None:
                return StockChangeOutcome.DUPLICATE, product

            applicable = True
            if requires is not None and not _recorded_delta(conn, requires):
                applicable = False
            if blocked_by is not None and _recorded_delta(conn, blocked_by) is not None:
                applicable = False

            conn.execute(
                "INSERT INTO stock_changes (token, product_id, delta, applied_at) VALUES (?, ?, ?, ?)",
                (token, product_id, delta if applicable else 0, now_iso()),
            )
            if not applicable:
                return StockChangeOutcome.NOT_APPLIED, product

        updated_stock = row["stock"] + delta
        conn.execute(
            "UPDATE products SET stock = ?, updated_at = ? WHERE id = ?",
            (updated_stock, now_iso(), product_id),
        )
    return StockChangeOutcome.APPLIED, product.model_copy(update={"stock": updated_stock})
