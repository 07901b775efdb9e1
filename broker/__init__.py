"""Kafka plumbing shared by the catalog and order services."""

from broker.config import CATALOG_EVENTS, ORDER_EVENTS, TOPICS, dlq_topic
from broker.connection import BrokerConnectionManager
from broker.publisher import Publisher
from broker.subscriber import Handler, Subscriber

__all__ = [
    "CATALOG_EVENTS",
    "ORDER_EVENTS",
    "TOPICS",
    "dlq_topic",
    "BrokerConnectionManager",
    "Publisher",
    "Subscriber",
    "Handler",
]
