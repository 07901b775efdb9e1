"""Kafka configuration, read once from the environment."""

import os

KAFKA_BOOTSTRAP = os.getenv("KAFKA_BOOTSTRAP", "localhost:29092,localhost:39092,localhost:49092").split(",")
CLIENT_ID = os.getenv("CLIENT_ID", "storefront-service")
GROUP_ID = os.getenv("GROUP_ID", "storefront-service-group")

CATALOG_EVENTS = "CatalogEvents"
ORDER_EVENTS = "OrderEvents"
TOPICS = (CATALOG_EVENTS, ORDER_EVENTS)
DLQ_SUFFIX = ".DLQ"

TOPIC_PARTITIONS = int(os.getenv("TOPIC_PARTITIONS", "2"))
TOPIC_REPLICATION_FACTOR = int(os.getenv("TOPIC_REPLICATION_FACTOR", "3"))

SESSION_TIMEOUT_MS = int(os.getenv("CONSUMER_SESSION_TIMEOUT_MS", "30000"))
HEARTBEAT_INTERVAL_MS = int(os.getenv("CONSUMER_HEARTBEAT_INTERVAL_MS", "3000"))
CONSUMER_MAX_RETRIES = int(os.getenv("CONSUMER_MAX_RETRIES", "3"))
CONSUMER_RETRY_BACKOFF_MS = int(os.getenv("CONSUMER_RETRY_BACKOFF_MS", "200"))
POLL_TIMEOUT_MS = int(os.getenv("CONSUMER_POLL_TIMEOUT_MS", "1000"))


def dlq_topic(topic: str) -> str:
    return f"{topic}{DLQ_SUFFIX}"
