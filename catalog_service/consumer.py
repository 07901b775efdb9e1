"""
Catalog consumer: subscribes stock reconciliation to CatalogEvents.

Run with ``python -m catalog_service.consumer``.
"""

import logging

from broker import CATALOG_EVENTS, BrokerConnectionManager
from broker.worker import run_worker, serve
from catalog_service.config import CLIENT_ID, DB_PATH, GROUP_ID, SERVICE_NAME
from catalog_service.reconciliation import StockReconciliationHandler
from catalog_service.storage import init_catalog_db
from common import setup_logging

setup_logging(SERVICE_NAME)
logger = logging.getLogger(__name__)


async def main() -> None:
    init_catalog_db(DB_PATH)
    connections = BrokerConnectionManager(client_id=CLIENT_ID, group_id=GROUP_ID)
    logger.info("Catalog consumer starting on %s", CATALOG_EVENTS)
    await serve(connections, StockReconciliationHandler(DB_PATH), CATALOG_EVENTS)


if __name__ == "__main__":
    run_worker("catalog consumer", main)
