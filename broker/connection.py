"""
BrokerConnectionManager: owns the Kafka producer and consumer of one process.

Construct one at startup and hand it to publishers, subscribers and relays.
Connecting is lazy and idempotent; the check-then-create step is guarded by a
lock per handle, so concurrent first callers share one connection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient

from broker.config import (
    CLIENT_ID,
    GROUP_ID,
    HEARTBEAT_INTERVAL_MS,
    KAFKA_BOOTSTRAP,
    SESSION_TIMEOUT_MS,
    TOPICS,
)
from broker.setup import provision_topics, required_topics

logger = logging.getLogger(__name__)


class BrokerConnectionManager:
    def __init__(
        self,
        client_id: str = CLIENT_ID,
        group_id: str = GROUP_ID,
        topics: Iterable[str] = TOPICS,
        bootstrap_servers: list[str] | None = None,
        producer_factory: Callable[..., AIOKafkaProducer] = AIOKafkaProducer,
        consumer_factory: Callable[..., AIOKafkaConsumer] = AIOKafkaConsumer,
        admin_factory: Callable[..., AIOKafkaAdminClient] = AIOKafkaAdminClient,
    ) -> None:
        self.client_id = client_id
        self.group_id = group_id
        self.topics = tuple(topics)
        self.bootstrap_servers = bootstrap_servers or KAFKA_BOOTSTRAP
        self._producer_factory = producer_factory
        self._consumer_factory = consumer_factory
        self._admin_factory = admin_factory

        self._producer: AIOKafkaProducer | None = None
        self._consumer: AIOKafkaConsumer | None = None
        self._producer_lock = asyncio.Lock()
        self._consumer_lock = asyncio.Lock()
        self._topics_provisioned = False

    @property
    def producer_connected(self) -> bool:
        return self._producer is not None

    @property
    def consumer_connected(self) -> bool:
        return self._consumer is not None

    async def connect_producer(self) -> AIOKafkaProducer:
        """Return the process producer, provisioning topics and connecting on first use."""
        async with self._producer_lock:
            if self._producer is not None:
                logger.debug("Producer already connected with existing connection")
                return self._producer

            if not self._topics_provisioned:
                await provision_topics(
                    required_topics(self.topics),
                    admin_factory=self._admin_factory,
                    client_id=self.client_id,
                )
                self._topics_provisioned = True

            producer = self._producer_factory(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                acks="all",
            )
            await producer.start()
            self._producer = producer
            logger.info("Producer connected with a new connection (client_id=%s)", self.client_id)
            return producer

    async def disconnect_producer(self) -> None:
        async with self._producer_lock:
            producer, self._producer = self._producer, None
            if producer is None:
                return
            await producer.stop()
            logger.info("Producer disconnected")

    async def connect_consumer(self) -> AIOKafkaConsumer:
        """Return the process consumer, joining the consumer group on first use."""
        async with self._consumer_lock:
            if self._consumer is not None:
                logger.debug("Consumer already connected with existing connection")
                return self._consumer

            consumer = self._consumer_factory(
                bootstrap_servers=self.bootstrap_servers,
                client_id=self.client_id,
                group_id=self.group_id,
                enable_auto_commit=False,
                auto_offset_reset="earliest",
                session_timeout_ms=SESSION_TIMEOUT_MS,
                heartbeat_interval_ms=HEARTBEAT_INTERVAL_MS,
            )
            await consumer.start()
            self._consumer = consumer
            logger.info("Consumer connected with a new connection (group_id=%s)", self.group_id)
            return consumer

    async def disconnect_consumer(self) -> None:
        async with self._consumer_lock:
            consumer, self._consumer = self._consumer, None
            if consumer is None:
                return
            await consumer.stop()
            logger.info("Consumer disconnected")

    async def close(self) -> None:
        await self.disconnect_consumer()
        await self.disconnect_producer()

    async def __aenter__(self) -> BrokerConnectionManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
