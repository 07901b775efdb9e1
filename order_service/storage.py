"""
Cart, order and outbox store for the order service (SQLite).

Order creation and cancellation write the business rows and the outbox
record for the event in one transaction; the outbox relay publishes from
there. Order numbers come from the order_number sequence row, so they never
repeat within a database.
"""

from __future__ import annotations

import json
import sqlite3

from pydantic import BaseModel

from common.errors import ValidationError
from common.ids import new_event_id, now_iso
from common.models import (
    Cart,
    CartLineItem,
    EventEnvelope,
    EventKind,
    OrderLineItem,
    OrderStatus,
    OrderWithLineItems,
)
from common.storage import connection, init_db, transaction
from order_service.config import ORDER_NUMBER_START

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS carts (
    customer_id INTEGER PRIMARY KEY,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS cart_line_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    customer_id INTEGER NOT NULL REFERENCES carts(customer_id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL,
    item_name TEXT NOT NULL,
    variant TEXT,
    qty INTEGER NOT NULL,
    price TEXT NOT NULL,
    UNIQUE (customer_id, product_id)
);
CREATE TABLE IF NOT EXISTS sequences (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
INSERT OR IGNORE INTO sequences (name, value) VALUES ('order_number', {ORDER_NUMBER_START});
CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_number INTEGER NOT NULL UNIQUE,
    customer_id INTEGER NOT NULL,
    txn_id TEXT,
    status TEXT NOT NULL,
    amount TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS order_line_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id INTEGER NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL,
    item_name TEXT NOT NULL,
    qty INTEGER NOT NULL,
    price TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS outbox (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    topic TEXT NOT NULL,
    event TEXT NOT NULL,
    headers_json TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    published_at TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);
"""


class OutboxRecord(BaseModel):
    """An event waiting in (or already relayed from) the outbox."""

    event_id: str
    topic: str
    envelope: EventEnvelope
    attempts: int = 0
    published_at: str | None = None
    last_error: str | None = None


def init_order_db(db_path: str) -> None:
    init_db(db_path, SCHEMA)


# -----------------------------------------------------------------------------
# Carts
# -----------------------------------------------------------------------------


def _cart_item(row: sqlite3.Row) -> CartLineItem:
    return CartLineItem(
        id=row["id"],
        product_id=row["product_id"],
        item_name=row["item_name"],
        variant=row["variant"],
        qty=row["qty"],
        price=row["price"],
    )


def _find_cart(conn: sqlite3.Connection, customer_id: int) -> Cart | None:
    if conn.execute("SELECT 1 FROM carts WHERE customer_id = ?", (customer_id,)).fetchone() is None:
        return None
    rows = conn.execute(
        "SELECT * FROM cart_line_items WHERE customer_id = ? ORDER BY id",
        (customer_id,),
    ).fetchall()
    return Cart(customer_id=customer_id, line_items=[_cart_item(r) for r in rows])


def find_cart(db_path: str, customer_id: int) -> Cart | None:
    with connection(db_path) as conn:
        return _find_cart(conn, customer_id)


def add_cart_item(db_path: str, customer_id: int, item: CartLineItem) -> Cart:
    """
    Put a product in the customer's cart, creating the cart on first use.
    Adding a product already in the cart adds to its quantity and refreshes its price.
    """
    with transaction(db_path) as conn:
        conn.execute(
            "INSERT OR IGNORE INTO carts (customer_id, created_at) VALUES (?, ?)",
            (customer_id, now_iso()),
        )
        conn.execute(
            """
            INSERT INTO cart_line_items (customer_id, product_id, item_name, variant, qty, price)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (customer_id, product_id)
            DO UPDATE SET qty = qty + excluded.qty, price = excluded.price, item_name = excluded.item_name
            """,
            (customer_id, item.product_id, item.item_name, item.variant, item.qty, item.price),
        )
        return _find_cart(conn, customer_id)


def update_cart_item(db_path: str, customer_id: int, line_item_id: int, qty: int) -> CartLineItem | None:
    with connection(db_path) as conn:
        cur = conn.execute(
            "UPDATE cart_line_items SET qty = ? WHERE id = ? AND customer_id = ?",
            (qty, line_item_id, customer_id),
        )
        if cur.rowcount == 0:
            return None
        row = conn.execute("SELECT * FROM cart_line_items WHERE id = ?", (line_item_id,)).fetchone()
    return _cart_item(row)


def delete_cart_item(db_path: str, customer_id: int, line_item_id: int) -> bool:
    with connection(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM cart_line_items WHERE id = ? AND customer_id = ?",
            (line_item_id, customer_id),
        )
    return cur.rowcount > 0


def _clear_cart(conn: sqlite3.Connection, customer_id: int) -> None:
    conn.execute("DELETE FROM cart_line_items WHERE customer_id = ?", (customer_id,))
    conn.execute("DELETE FROM carts WHERE customer_id = ?", (customer_id,))


def clear_cart_data(db_path: str, customer_id: int) -> None:
    with transaction(db_path) as conn:
        _clear_cart(conn, customer_id)


# -----------------------------------------------------------------------------
# Orders
# -----------------------------------------------------------------------------


def _next_order_number(conn: sqlite3.Connection) -> int:
    conn.execute("UPDATE sequences SET value = value + 1 WHERE name = 'order_number'")
    return conn.execute("SELECT value FROM sequences WHERE name = 'order_number'").fetchone()["value"]


def _load_order(conn: sqlite3.Connection, row: sqlite3.Row) -> OrderWithLineItems:
    items = conn.execute(
        "SELECT * FROM order_line_items WHERE order_id = ? ORDER BY id",
        (row["id"],),
    ).fetchall()
    return OrderWithLineItems(
        id=row["id"],
        order_number=row["order_number"],
        customer_id=row["customer_id"],
        txn_id=row["txn_id"],
        status=OrderStatus(row["status"]),
        amount=row["amount"],
        order_items=[
            OrderLineItem(
                id=i["id"],
                product_id=i["product_id"],
                item_name=i["item_name"],
                qty=i["qty"],
                price=i["price"],
            )
            for i in items
        ],
    )


def _append_outbox(conn: sqlite3.Connection, topic: str, envelope: EventEnvelope) -> str:
    event_id = new_event_id()
    conn.execute(
        """
        INSERT INTO outbox (event_id, topic, event, headers_json, payload_json, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event_id,
            topic,
            envelope.event.value,
            json.dumps(envelope.headers),
            json.dumps(envelope.data),
            now_iso(),
        ),
    )
    return event_id


def create_order(
    db_path: str,
    customer_id: int,
    amount: str,
    items: list[OrderLineItem],
    txn_id: str | None,
    topic: str,
    headers: dict[str, str] | None = None,
) -> OrderWithLineItems:
    """
    Persist an order and its line items, clear the customer's cart and queue
    ORDER_CREATED in the outbox, all in one transaction.
    """
    now = now_iso()
    with transaction(db_path) as conn:
        order_number = _next_order_number(conn)
        cur = conn.execute(
            """
            INSERT INTO orders (order_number, customer_id, txn_id, status, amount, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (order_number, customer_id, txn_id, OrderStatus.PENDING.value, amount, now, now),
        )
        order_id = cur.lastrowid
        for item in items:
            conn.execute(
                """
                INSERT INTO order_line_items (order_id, product_id, item_name, qty, price)
                VALUES (?, ?, ?, ?, ?)
                """,
                (order_id, item.product_id, item.item_name, item.qty, item.price),
            )
        order = _load_order(conn, conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone())

        _clear_cart(conn, customer_id)
        _append_outbox(
            conn,
            topic,
            EventEnvelope(
                headers=headers or {},
                event=EventKind.ORDER_CREATED,
                data={"orderInput": order.to_wire()},
            ),
        )
    return order


def update_order_status(
    db_path: str,
    order_id: int,
    status: OrderStatus,
    topic: str,
    headers: dict[str, str] | None = None,
) -> OrderWithLineItems | None:
    """
    Change an order's status. Moving an order to CANCELED queues ORDER_CANCELED
    in the same transaction. Canceled is final: moving a canceled order to any
    other status raises ValidationError. Returns None if the order does not exist.
    """
    with transaction(db_path) as conn:
        row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        if row is None:
            return None
        previous = OrderStatus(row["status"])
        if previous is OrderStatus.CANCELED and status is not OrderStatus.CANCELED:
            raise ValidationError("a canceled order cannot be reopened")
        conn.execute(
            "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, now_iso(), order_id),
        )
        order = _load_order(conn, conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone())
        if status is OrderStatus.CANCELED and previous is not OrderStatus.CANCELED:
            _append_outbox(
                conn,
                topic,
                EventEnvelope(
                    headers=headers or {},
                    event=EventKind.ORDER_CANCELED,
                    data={"orderInput": order.to_wire()},
                ),
            )
    return order


def find_order(db_path: str, order_id: int) -> OrderWithLineItems | None:
    with connection(db_path) as conn:
        row = conn.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        return _load_order(conn, row) if row is not None else None


def find_orders_by_customer(db_path: str, customer_id: int) -> list[OrderWithLineItems]:
    with connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM orders WHERE customer_id = ? ORDER BY id",
            (customer_id,),
        ).fetchall()
        return [_load_order(conn, r) for r in rows]


def delete_order(db_path: str, order_id: int) -> bool:
    """
    Delete a canceled order and its line items. Returns False if the order does
    not exist; raises ValidationError for an order that was never canceled, whose
    stock would otherwise stay taken.
    """
    with transaction(db_path) as conn:
        row = conn.execute("SELECT status FROM orders WHERE id = ?", (order_id,)).fetchone()
        if row is None:
            return False
        if OrderStatus(row["status"]) is not OrderStatus.CANCELED:
            raise ValidationError("only canceled orders can be deleted")
        conn.execute("DELETE FROM orders WHERE id = ?", (order_id,))
    return True


# -----------------------------------------------------------------------------
# Outbox
# -----------------------------------------------------------------------------


def _outbox_record(row: sqlite3.Row) -> OutboxRecord:
    return OutboxRecord(
        event_id=row["event_id"],
        topic=row["topic"],
        envelope=EventEnvelope(
            headers=json.loads(row["headers_json"]),
            event=EventKind(row["event"]),
            data=json.loads(row["payload_json"]),
        ),
        attempts=row["attempts"],
        published_at=row["published_at"],
        last_error=row["last_error"],
    )


def pending_outbox(db_path: str, limit: int = 100) -> list[OutboxRecord]:
    """Unpublished outbox records, oldest first."""
    with connection(db_path) as conn:
        rows = conn.execute(
            "SELECT * FROM outbox WHERE published_at IS NULL ORDER BY seq LIMIT ?",
            (limit,),
        ).fetchall()
    return [_outbox_record(r) for r in rows]


def list_outbox(db_path: str) -> list[OutboxRecord]:
    with connection(db_path) as conn:
        rows = conn.execute("SELECT * FROM outbox ORDER BY seq").fetchall()
    return [_outbox_record(r) for r in rows]


def mark_outbox_published(db_path: str, event_id: str) -> None:
    with connection(db_path) as conn:
        conn.execute(
            "UPDATE outbox SET published_at = ?, attempts = attempts + 1, last_error = NULL WHERE event_id = ?",
            (now_iso(), event_id),
        )


def mark_outbox_failed(db_path: str, event_id: str, error: str) -> None:
    with connection(db_path) as conn:
        conn.execute(
            "UPDATE outbox SET attempts = attempts + 1, last_error = ? WHERE event_id = ?",
            (error, event_id),
        )
