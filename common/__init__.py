"""
Shared common module for the catalog and order services.

Framework-agnostic except common.api (FastAPI error handlers). Uses
Pydantic v2 for schemas and SQLite for local persistence.
"""

from common.errors import APIError, AppError, AuthorizeError, NotFoundError, ValidationError
from common.ids import new_event_id, new_idempotency_token, now_iso
from common.logging import setup_logging
from common.models import (
    Cart,
    CartLineItem,
    EventEnvelope,
    EventKind,
    HandlerResult,
    HandlerStatus,
    OrderLineItem,
    OrderStatus,
    OrderWithLineItems,
    Product,
)
from common.storage import connection, init_db, transaction

__all__ = [
    "AppError",
    "APIError",
    "AuthorizeError",
    "NotFoundError",
    "ValidationError",
    "new_event_id",
    "new_idempotency_token",
    "now_iso",
    "setup_logging",
    "Cart",
    "CartLineItem",
    "EventEnvelope",
    "EventKind",
    "HandlerResult",
    "HandlerStatus",
    "OrderLineItem",
    "OrderStatus",
    "OrderWithLineItems",
    "Product",
    "connection",
    "init_db",
    "transaction",
]
