"""
Order consumer: subscribes the order-side handler to OrderEvents.

Run with ``python -m order_service.consumer``.
"""

import logging

from broker import ORDER_EVENTS, BrokerConnectionManager
from broker.worker import run_worker, serve
from common import setup_logging
from order_service.config import CLIENT_ID, GROUP_ID, SERVICE_NAME
from order_service.flow import handle_subscription

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


async def main() -> None:
    connections = BrokerConnectionManager(client_id=f"{CLIENT_ID}-consumer", group_id=GROUP_ID)
    logger.info("Order consumer starting on %s", ORDER_EVENTS)
    await serve(connections, handle_subscription, ORDER_EVENTS)


if __name__ == "__main__":
    run_worker("order consumer", main)
