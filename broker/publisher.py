"""Publisher: one envelope in, one Kafka record out."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping

from broker.connection import BrokerConnectionManager
from common.models import EventEnvelope

logger = logging.getLogger(__name__)


def encode_headers(headers: Mapping[str, str | bytes]) -> list[tuple[str, bytes]]:
    """Kafka header list from a string map (values utf-8 encoded)."""
    return [(k, v if isinstance(v, bytes) else str(v).encode("utf-8")) for k, v in headers.items()]


def serialize(data: object) -> bytes:
    return json.dumps(data, default=str).encode("utf-8")


class Publisher:
    """
    Sends envelopes through the connection manager's producer.

    No batching and no retry: a call acknowledges, returns False, or raises.
    Callers that need delivery guarantees go through the order outbox.
    """

    def __init__(self, connections: BrokerConnectionManager) -> None:
        self._connections = connections

    async def publish(self, envelope: EventEnvelope, topic: str) -> bool:
        return await self.publish_raw(
            topic,
            key=envelope.event.value,
            value=serialize(envelope.data),
            headers=envelope.headers,
        )

    async def publish_raw(
        self,
        topic: str,
        key: str | bytes,
        value: bytes,
        headers: Mapping[str, str | bytes] | None = None,
    ) -> bool:
        """Send pre-serialized bytes; a bytes key goes out unchanged. True iff a partition acknowledged the write."""
        producer = await self._connections.connect_producer()
        metadata = await producer.send_and_wait(
            topic,
            value=value,
            key=key if isinstance(key, bytes) else key.encode("utf-8"),
            headers=encode_headers(headers or {}),
        )
        if metadata is None or metadata.offset < 0:
            logger.warning("Publish of %r to %s was not acknowledged", key, topic)
            return False
        logger.info(
            "Published %s to %s [partition=%s offset=%s]",
            key,
            topic,
            metadata.partition,
            metadata.offset,
        )
        return True
