"""
OrderService: HTTP API for carts and orders.

Checkout writes the order and its ORDER_CREATED event in one transaction;
the outbox relay started in the lifespan publishes it to CatalogEvents.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, Request

from broker import BrokerConnectionManager, Publisher
from common import AuthorizeError, NotFoundError, setup_logging
from common.api import health, install_error_handlers
from common.models import Cart, CartEditRequest, CartLineItem, CartRequest, OrderStatusUpdate, OrderWithLineItems, User
from order_service import cart as cart_service
from order_service import flow
from order_service.clients import AuthClient, CatalogClient
from order_service.config import CLIENT_ID, DB_PATH, GROUP_ID, SERVICE_NAME
from order_service.outbox import OutboxRelay
from order_service.storage import init_order_db

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_order_db(app.state.db_path)
    connections = app.state.connections
    relay = OutboxRelay(app.state.db_path, Publisher(connections))
    app.state.relay = relay
    relay_task = asyncio.create_task(relay.run())
    try:
        yield
    finally:
        relay.stop()
        await relay_task
        await connections.close()


async def current_user(request: Request, authorization: str | None = Header(default=None)) -> User:
    if not authorization:
        raise AuthorizeError("Unauthorized due to authorization token missing!")
    return await request.app.state.auth.validate(authorization)


def forwarded_headers(authorization: str | None = Header(default=None)) -> dict[str, str]:
    """Headers carried on events raised by this request."""
    return {"Authorization": authorization} if authorization else {}


def create_app(
    db_path: str = DB_PATH,
    connections: BrokerConnectionManager | None = None,
    catalog: CatalogClient | None = None,
    auth: AuthClient | None = None,
) -> FastAPI:
    app = FastAPI(title="Order Service", lifespan=lifespan)
    app.state.db_path = db_path
    app.state.connections = connections or BrokerConnectionManager(client_id=CLIENT_ID, group_id=GROUP_ID)
    app.state.catalog = catalog or CatalogClient()
    app.state.auth = auth or AuthClient()
    install_error_handlers(app)

    # ── Cart ─────────────────────────────────────────

    @app.post("/cart")
    async def add_to_cart(payload: CartRequest, user: User = Depends(current_user)) -> Cart:
        return await cart_service.create_cart(db_path, user.id, payload, app.state.catalog)

    @app.get("/cart")
    def get_cart(user: User = Depends(current_user)) -> Cart:
        return cart_service.get_cart(db_path, user.id)

    @app.patch("/cart/{line_item_id}")
    def edit_cart(line_item_id: int, payload: CartEditRequest, user: User = Depends(current_user)) -> CartLineItem:
        return cart_service.edit_cart(db_path, user.id, line_item_id, payload.qty)

    @app.delete("/cart/{line_item_id}")
    def delete_cart_item(line_item_id: int, user: User = Depends(current_user)) -> dict:
        return cart_service.delete_cart_item(db_path, user.id, line_item_id)

    # ── Orders ───────────────────────────────────────

    @app.post("/orders", status_code=201)
    async def create_order(
        user: User = Depends(current_user),
        headers: dict[str, str] = Depends(forwarded_headers),
    ) -> dict:
        return await flow.create_order(db_path, user.id, relay=app.state.relay, headers=headers)

    @app.get("/orders")
    def get_orders(user: User = Depends(current_user)) -> list[OrderWithLineItems]:
        return flow.get_orders(db_path, user.id)

    @app.get("/orders/{order_id}")
    def get_order(order_id: int, user: User = Depends(current_user)) -> OrderWithLineItems:
        order = flow.get_order(db_path, order_id)
        if order.customer_id != user.id:
            raise NotFoundError("Order not found")
        return order

    # service-to-service: status changes come from other services, not customers
    @app.patch("/orders/{order_id}")
    async def update_order(
        order_id: int,
        payload: OrderStatusUpdate,
        headers: dict[str, str] = Depends(forwarded_headers),
    ) -> dict:
        return await flow.update_order(db_path, order_id, payload.status, relay=app.state.relay, headers=headers)

    @app.delete("/orders/{order_id}")
    def delete_order(order_id: int, user: User = Depends(current_user)) -> dict:
        order = flow.get_order(db_path, order_id)
        if order.customer_id != user.id:
            raise NotFoundError("Order not found")
        flow.delete_order(db_path, order_id)
        return {"id": order_id, "deleted": True}

    @app.get("/health")
    def health_check() -> dict:
        return health(SERVICE_NAME)

    return app


app = create_app()
