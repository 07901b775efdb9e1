"""Provision Kafka topics: event topics and their dead-letter twins."""

import logging
from collections.abc import Callable, Iterable

from aiokafka.admin import AIOKafkaAdminClient, NewTopic

from broker.config import (
    CLIENT_ID,
    KAFKA_BOOTSTRAP,
    TOPIC_PARTITIONS,
    TOPIC_REPLICATION_FACTOR,
    TOPICS,
    dlq_topic,
)

logger = logging.getLogger(__name__)


def required_topics(topics: Iterable[str] = TOPICS) -> list[str]:
    """Event topics followed by their DLQ topics, in a stable order."""
    topics = list(topics)
    return topics + [dlq_topic(t) for t in topics]


async def provision_topics(
    topics: Iterable[str],
    admin_factory: Callable[..., AIOKafkaAdminClient] = AIOKafkaAdminClient,
    num_partitions: int = TOPIC_PARTITIONS,
    replication_factor: int = TOPIC_REPLICATION_FACTOR,
    client_id: str = CLIENT_ID,
) -> list[str]:
    """
    Create the topics that do not exist yet. Returns the names created.

    Existing topics are never deleted or altered; existence is checked first,
    so re-running against a provisioned cluster creates nothing.
    """
    topics = list(topics)
    admin = admin_factory(bootstrap_servers=KAFKA_BOOTSTRAP, client_id=f"{client_id}-admin")
    await admin.start()
    try:
        existing = set(await admin.list_topics())
        logger.info("Existing topics: %s", sorted(existing))

        missing = [t for t in topics if t not in existing]
        for name in topics:
            if name in existing:
                logger.info("Topic already exists: %s", name)
        if missing:
            await admin.create_topics(
                [
                    NewTopic(
                        name=name,
                        num_partitions=num_partitions,
                        replication_factor=replication_factor,
                    )
                    for name in missing
                ]
            )
            logger.info("Created topics: %s", missing)
        return missing
    finally:
        await admin.close()
