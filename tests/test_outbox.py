"""OutboxRelay: in-order delivery, failed records stay pending."""

import asyncio
import json

from common.models import OrderLineItem
from order_service import storage
from order_service.config import PENDING_TXN_ID
from order_service.outbox import OutboxRelay


def place_order(db_path, customer_id):
    return storage.create_order(
        db_path,
        customer_id=customer_id,
        amount="5",
        items=[OrderLineItem(product_id=1, item_name="lamp", qty=1, price="5")],
        txn_id=PENDING_TXN_ID,
        topic="CatalogEvents",
    )


async def test_unacknowledged_publish_keeps_every_record_pending(connections, publisher, order_db):
    place_order(order_db, 1)
    place_order(order_db, 2)
    producer = await connections.connect_producer()
    producer.acknowledge = False
    relay = OutboxRelay(order_db, publisher)

    assert await relay.flush() == 0

    first, second = storage.pending_outbox(order_db)
    assert first.attempts == 1 and first.last_error == "not acknowledged"
    assert second.attempts == 0


async def test_records_are_relayed_in_outbox_order(connections, publisher, order_db):
    first = place_order(order_db, 1)
    second = place_order(order_db, 2)
    producer = await connections.connect_producer()
    relay = OutboxRelay(order_db, publisher)

    assert await relay.flush() == 2
    assert await relay.flush() == 0

    numbers = [json.loads(m.value)["orderInput"]["orderNumber"] for m in producer.messages("CatalogEvents")]
    assert numbers == [first.order_number, second.order_number]


async def test_run_relays_until_stopped(connections, publisher, order_db):
    place_order(order_db, 1)
    relay = OutboxRelay(order_db, publisher, poll_interval=0.01)

    task = asyncio.create_task(relay.run())
    for _ in range(100):
        if not storage.pending_outbox(order_db):
            break
        await asyncio.sleep(0.01)
    relay.stop()
    await asyncio.wait_for(task, timeout=1)

    assert storage.pending_outbox(order_db) == []
