"""
Stock reconciliation: applies order events from CatalogEvents to product stock.

ORDER_CREATED decrements stock for every line, ORDER_CANCELED puts it back.
Each line is applied independently under an idempotency token built from the
event kind, order number and line reference, so a redelivered event does not
move stock twice. A cancellation only restores a line whose decrement was
applied, and a creation arriving after its cancellation changes nothing; the
two event kinds are keyed differently and may land on different partitions.
Unusable payloads and unknown products are reported in the returned
HandlerResult instead of raised; store failures still raise so the subscriber
can retry or dead-letter the record.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from catalog_service.storage import StockChangeOutcome, apply_stock_change, find_product
from common.ids import new_idempotency_token
from common.models import EventEnvelope, EventKind, HandlerResult, StockLineItem

logger = logging.getLogger(__name__)

_STOCK_EVENTS = frozenset({EventKind.ORDER_CREATED, EventKind.ORDER_CANCELED})


class StockReconciliationHandler:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def __call__(self, envelope: EventEnvelope) -> HandlerResult:
        return await self.handle(envelope)

    async def handle(self, envelope: EventEnvelope) -> HandlerResult:
        if envelope.event not in _STOCK_EVENTS:
            return HandlerResult.skipped(f"no stock action for {envelope.event.value}")

        order = envelope.data.get("orderInput")
        items = order.get("orderItems") if isinstance(order, dict) else None
        if not isinstance(items, list):
            logger.error(
                "Invalid order message for %s: orderItems is not iterable or missing",
                envelope.event.value,
            )
            return HandlerResult.skipped("orderItems is not iterable or missing")

        order_number = order.get("orderNumber")
        if not isinstance(order_number, int) or isinstance(order_number, bool):
            logger.warning(
                "%s without an order number; %d lines cannot be matched to earlier stock changes",
                envelope.event.value,
                len(items),
            )
            order_number = None

        applied: list[int] = []
        duplicates: list[int] = []
        missing: list[int] = []
        invalid: list[int] = []
        not_applied: list[int] = []

        for position, raw in enumerate(items):
            try:
                item = StockLineItem.model_validate(raw)
            except PydanticValidationError as exc:
                logger.error("Skipping malformed line %d of order %s: %s", position, order_number, exc)
                invalid.append(position)
                continue

            product = find_product(self._db_path, item.product_id)
            if product is None:
                logger.error("Product %s not found during stock update for order %s", item.product_id, order_number)
                missing.append(item.product_id)
                continue

            if order_number is None:
                if envelope.event is EventKind.ORDER_CANCELED:
                    # nothing to match the restock against
                    logger.warning("Not restoring product %s for a cancellation without order number", item.product_id)
                    not_applied.append(item.product_id)
                    continue
                outcome, updated = apply_stock_change(self._db_path, item.product_id, -item.qty)
            else:
                line_ref = item.id if item.id is not None else position
                created = new_idempotency_token(EventKind.ORDER_CREATED.value, order_number, line_ref, item.product_id)
                canceled = new_idempotency_token(EventKind.ORDER_CANCELED.value, order_number, line_ref, item.product_id)
                if envelope.event is EventKind.ORDER_CREATED:
                    outcome, updated = apply_stock_change(
                        self._db_path, item.product_id, -item.qty, token=created, blocked_by=canceled
                    )
                else:
                    outcome, updated = apply_stock_change(
                        self._db_path, item.product_id, item.qty, token=canceled, requires=created
                    )

            if outcome is StockChangeOutcome.APPLIED:
                applied.append(item.product_id)
                if updated.stock < 0:
                    logger.warning("Product %s stock is negative (%d) after order %s", updated.id, updated.stock, order_number)
            elif outcome is StockChangeOutcome.DUPLICATE:
                logger.info("Stock change for order %s line %s already recorded, skipping", order_number, item.product_id)
                duplicates.append(item.product_id)
            elif outcome is StockChangeOutcome.NOT_APPLIED:
                logger.warning(
                    "%s for order %s left product %s unchanged: no matching applied stock change",
                    envelope.event.value,
                    order_number,
                    item.product_id,
                )
                not_applied.append(item.product_id)
            else:
                logger.error("Product %s disappeared during stock update for order %s", item.product_id, order_number)
                missing.append(item.product_id)

        logger.info(
            "Reconciled %s for order %s: applied=%s duplicates=%s missing=%s invalid=%s not_applied=%s",
            envelope.event.value,
            order_number,
            applied,
            duplicates,
            missing,
            invalid,
            not_applied,
        )
        return HandlerResult.success(
            applied=applied,
            duplicates=duplicates,
            missing=missing,
            invalid=invalid,
            not_applied=not_applied,
        )
