"""
Pydantic v2 data models for products, carts, orders, events and handler results.

Framework-agnostic; safe to use from FastAPI (request/response bodies) or the
broker workers. Wire names are camelCase (orderItems, productId, ...) while
Python attributes stay snake_case; both are accepted on input.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models exchanged over HTTP or Kafka: camelCase aliases, no extras."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict using the camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


# -----------------------------------------------------------------------------
# Events
# -----------------------------------------------------------------------------


class EventKind(str, Enum):
    """Closed set of event kinds; the value doubles as the Kafka message key."""

    ORDER_CREATED = "ORDER_CREATED"
    ORDER_CANCELED = "ORDER_CANCELED"


class EventEnvelope(BaseModel):
    """Message exchanged between services: headers, event kind and opaque payload."""

    model_config = ConfigDict(extra="forbid")

    headers: dict[str, str] = Field(default_factory=dict)
    event: EventKind
    data: dict[str, Any] = Field(default_factory=dict)


class HandlerStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class HandlerResult(BaseModel):
    """Outcome of one subscription handler invocation."""

    status: HandlerStatus
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, **details: Any) -> HandlerResult:
        return cls(status=HandlerStatus.SUCCESS, details=details)

    @classmethod
    def skipped(cls, reason: str, **details: Any) -> HandlerResult:
        return cls(status=HandlerStatus.SKIPPED, reason=reason, details=details)

    @classmethod
    def failed(cls, reason: str, **details: Any) -> HandlerResult:
        return cls(status=HandlerStatus.FAILED, reason=reason, details=details)


# -----------------------------------------------------------------------------
# Orders
# -----------------------------------------------------------------------------


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELED = "CANCELED"


class OrderLineItem(CamelModel):
    """Line item snapshot taken at checkout; price is decoupled from the catalog."""

    id: int | None = None
    product_id: int
    item_name: str
    qty: int = Field(..., gt=0, description="Quantity must be positive")
    price: str

    @property
    def line_total(self) -> Decimal:
        return self.qty * Decimal(self.price)


class OrderWithLineItems(CamelModel):
    """Order header plus its line items, as persisted and as published."""

    id: int | None = None
    order_number: int
    customer_id: int
    txn_id: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    amount: str
    order_items: list[OrderLineItem] = Field(default_factory=list)


class OrderStatusUpdate(CamelModel):
    status: OrderStatus


class StockLineItem(BaseModel):
    """
    Lenient view of an order line as read from an event payload.

    Only what stock reconciliation needs; other fields are ignored.

    >>> StockLineItem.model_validate({"productId": 1, "qty": 3, "price": "9"}).qty
    3
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: int | None = None
    product_id: int
    qty: int = Field(..., gt=0)


# -----------------------------------------------------------------------------
# Carts
# -----------------------------------------------------------------------------


class CartLineItem(CamelModel):
    id: int | None = None
    product_id: int
    item_name: str
    variant: str | None = None
    qty: int = Field(..., gt=0)
    price: str


class Cart(CamelModel):
    customer_id: int
    line_items: list[CartLineItem] = Field(default_factory=list)


class CartRequest(CamelModel):
    """Request to put a product into the caller's cart."""

    product_id: int
    qty: int = Field(..., gt=0)


class CartEditRequest(CamelModel):
    qty: int = Field(..., gt=0)


# -----------------------------------------------------------------------------
# Catalog
# -----------------------------------------------------------------------------


class Product(CamelModel):
    """Catalog product. Stock is not clamped: reconciliation may drive it negative."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: int
    name: str
    description: str = ""
    price: str
    stock: int
    variant: str | None = None


class ProductCreateRequest(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=1)
    stock: int = Field(..., ge=0)
    variant: str | None = None


class ProductUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = Field(default=None, min_length=1)
    price: Decimal | None = Field(default=None, ge=1)
    stock: int | None = Field(default=None, ge=1)
    variant: str | None = None


class StockRequest(CamelModel):
    ids: list[int] = Field(..., min_length=1)


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------


class User(BaseModel):
    """Identity returned by the auth service; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")

    id: int
    email: str | None = None
