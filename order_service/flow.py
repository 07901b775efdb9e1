"""
Order creation and lifecycle.

create_order() turns the customer's cart into an order. The order row, its
line items, the cart clear and the ORDER_CREATED outbox record commit
together; publishing happens afterwards through the outbox relay, so a broker
outage delays the catalog's stock update but never loses it and never fails
the checkout.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from broker.config import CATALOG_EVENTS
from common.errors import NotFoundError
from common.models import Cart, EventEnvelope, HandlerResult, OrderLineItem, OrderStatus, OrderWithLineItems
from order_service import storage
from order_service.config import PENDING_TXN_ID
from order_service.outbox import OutboxRelay

logger = logging.getLogger(__name__)


def fold_cart(cart: Cart) -> tuple[list[OrderLineItem], str]:
    """
    Order lines for a cart plus the order amount (sum of qty * price) as a string.

    >>> from common.models import CartLineItem
    >>> cart = Cart(customer_id=1, line_items=[CartLineItem(product_id=1, item_name="a", qty=2, price="1200")])
    >>> fold_cart(cart)[1]
    '2400'
    """
    items = [
        OrderLineItem(product_id=li.product_id, item_name=li.item_name, qty=li.qty, price=li.price)
        for li in cart.line_items
    ]
    total = sum((item.line_total for item in items), Decimal(0))
    return items, str(total)


async def _relay(relay: OutboxRelay | None) -> None:
    if relay is None:
        return
    try:
        await relay.flush()
    except Exception:
        logger.exception("Outbox flush after commit failed; the relay loop will retry")


async def create_order(
    db_path: str,
    customer_id: int,
    relay: OutboxRelay | None = None,
    headers: dict[str, str] | None = None,
) -> dict:
    cart = storage.find_cart(db_path, customer_id)
    if cart is None:
        raise NotFoundError("Cart not found")

    items, amount = fold_cart(cart)
    order = storage.create_order(
        db_path,
        customer_id=customer_id,
        amount=amount,
        items=items,
        txn_id=PENDING_TXN_ID,
        topic=CATALOG_EVENTS,
        headers=headers,
    )
    logger.info("Order %s created for customer %s (amount=%s)", order.order_number, customer_id, amount)

    await _relay(relay)
    return {"message": "Order created successfully.", "orderNumber": order.order_number}


async def update_order(
    db_path: str,
    order_id: int,
    status: OrderStatus,
    relay: OutboxRelay | None = None,
    headers: dict[str, str] | None = None,
) -> dict:
    order = storage.update_order_status(db_path, order_id, status, topic=CATALOG_EVENTS, headers=headers)
    if order is None:
        raise NotFoundError("Order not found")
    logger.info("Order %s moved to %s", order.order_number, status.value)

    if status is OrderStatus.CANCELED:
        await _relay(relay)
    return {"message": "Order updated successfully."}


def get_order(db_path: str, order_id: int) -> OrderWithLineItems:
    order = storage.find_order(db_path, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_orders(db_path: str, customer_id: int) -> list[OrderWithLineItems]:
    return storage.find_orders_by_customer(db_path, customer_id)


def delete_order(db_path: str, order_id: int) -> bool:
    if not storage.delete_order(db_path, order_id):
        raise NotFoundError("Order not found")
    return True


async def handle_subscription(envelope: EventEnvelope) -> HandlerResult:
    """OrderEvents handler. Nothing publishes order-side reactions yet, so events are acknowledged."""
    logger.info("Order consumer received %s (%d header(s))", envelope.event.value, len(envelope.headers))
    return HandlerResult.skipped(f"no order-side action for {envelope.event.value}")
