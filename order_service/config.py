"""Order service settings."""

import os

SERVICE_NAME = "order-service"
DB_PATH = os.getenv("DB_PATH", "/data/orders.db")
CLIENT_ID = os.getenv("CLIENT_ID", "order-service")
GROUP_ID = os.getenv("GROUP_ID", "order-service-group")

CATALOG_BASE_URL = os.getenv("CATALOG_BASE_URL", "http://localhost:8000")
AUTH_SERVICE_BASE_URL = os.getenv("AUTH_SERVICE_BASE_URL", "http://localhost:8002")
HTTP_TIMEOUT_MS = int(os.getenv("HTTP_TIMEOUT_MS", "1000"))

OUTBOX_POLL_INTERVAL = float(os.getenv("OUTBOX_POLL_INTERVAL", "5"))
OUTBOX_BATCH_SIZE = int(os.getenv("OUTBOX_BATCH_SIZE", "100"))

ORDER_NUMBER_START = 100000
PENDING_TXN_ID = "PENDING-TXN-ID"
