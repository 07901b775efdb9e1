"""Cart operations. Product name, variant and price are snapshotted from the catalog."""

from __future__ import annotations

import logging

from common.errors import NotFoundError
from common.models import Cart, CartLineItem, CartRequest
from order_service import storage
from order_service.clients import CatalogClient

logger = logging.getLogger(__name__)


async def create_cart(db_path: str, customer_id: int, request: CartRequest, catalog: CatalogClient) -> Cart:
    product = await catalog.get_product(request.product_id)
    if product.stock < request.qty:
        raise NotFoundError("product is out of stock")

    cart = storage.add_cart_item(
        db_path,
        customer_id,
        CartLineItem(
            product_id=product.id,
            item_name=product.name,
            variant=product.variant,
            qty=request.qty,
            price=product.price,
        ),
    )
    logger.info("Customer %s added product %s x%d to cart", customer_id, product.id, request.qty)
    return cart


def get_cart(db_path: str, customer_id: int) -> Cart:
    cart = storage.find_cart(db_path, customer_id)
    if cart is None:
        raise NotFoundError("cart not found")
    return cart


def edit_cart(db_path: str, customer_id: int, line_item_id: int, qty: int) -> CartLineItem:
    item = storage.update_cart_item(db_path, customer_id, line_item_id, qty)
    if item is None:
        raise NotFoundError("cart item not found")
    return item


def delete_cart_item(db_path: str, customer_id: int, line_item_id: int) -> dict:
    if not storage.delete_cart_item(db_path, customer_id, line_item_id):
        raise NotFoundError("cart item not found")
    return {"id": line_item_id, "deleted": True}
