"""Cart operations and the catalog/auth HTTP clients (httpx.MockTransport)."""

import httpx
import pytest

from common.errors import APIError, AuthorizeError, NotFoundError
from common.models import CartRequest
from order_service import cart, storage
from order_service.clients import AuthClient, CatalogClient

LAMP = {"id": 123, "name": "lamp", "description": "desk lamp", "price": "1200", "stock": 5, "variant": "black"}


def catalog_client(status=200, body=None, error=None):
    def handler(request):
        if error is not None:
            raise error
        assert request.url.path == "/products/123"
        return httpx.Response(status, json=body if body is not None else LAMP)

    return CatalogClient(base_url="http://catalog", transport=httpx.MockTransport(handler))


async def test_catalog_client_returns_product():
    product = await catalog_client().get_product(123)

    assert product.name == "lamp"
    assert product.stock == 5


@pytest.mark.parametrize(
    "client, error",
    [
        (lambda: catalog_client(status=404, body={"error": "product not found"}), NotFoundError),
        (lambda: catalog_client(status=503, body={}), APIError),
        (lambda: catalog_client(error=httpx.ConnectError("refused")), APIError),
    ],
)
async def test_catalog_client_errors(client, error):
    with pytest.raises(error):
        await client().get_product(123)


async def test_auth_client_forwards_token():
    def handler(request):
        assert request.url.path == "/auth/validate"
        if request.headers.get("Authorization") != "Bearer good":
            return httpx.Response(401, json={"error": "invalid"})
        return httpx.Response(200, json={"id": 456, "email": "a@example.com", "role": "customer"})

    auth = AuthClient(base_url="http://auth", transport=httpx.MockTransport(handler))

    assert (await auth.validate("Bearer good")).id == 456
    with pytest.raises(AuthorizeError):
        await auth.validate("Bearer bad")


async def test_add_to_cart_snapshots_product(order_db):
    result = await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=2), catalog_client())

    [line] = result.line_items
    assert (line.product_id, line.item_name, line.variant, line.qty, line.price) == (123, "lamp", "black", 2, "1200")


async def test_adding_same_product_merges_quantity(order_db):
    client = catalog_client()
    await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=2), client)
    result = await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=1), client)

    assert [li.qty for li in result.line_items] == [3]


async def test_out_of_stock_product_is_rejected(order_db):
    with pytest.raises(NotFoundError, match="out of stock"):
        await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=6), catalog_client())
    with pytest.raises(NotFoundError):
        cart.get_cart(order_db, 456)


async def test_edit_and_delete_cart_lines(order_db):
    result = await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=2), catalog_client())
    line_id = result.line_items[0].id

    assert cart.edit_cart(order_db, 456, line_id, 4).qty == 4
    with pytest.raises(NotFoundError):
        cart.edit_cart(order_db, 999, line_id, 4)

    assert cart.delete_cart_item(order_db, 456, line_id) == {"id": line_id, "deleted": True}
    assert cart.get_cart(order_db, 456).line_items == []
    with pytest.raises(NotFoundError):
        cart.delete_cart_item(order_db, 456, line_id)


async def test_clear_cart_removes_cart_and_lines(order_db):
    await cart.create_cart(order_db, 456, CartRequest(product_id=123, qty=2), catalog_client())

    storage.clear_cart_data(order_db, 456)

    assert storage.find_cart(order_db, 456) is None
