"""
Subscriber: the consumer-group receive loop.

Records are handled one at a time in partition order. The offset of a record
is committed (as offset + 1) only after its handler finished with SUCCESS or
SKIPPED, or after the record was written to the dead-letter topic. Delivery is
therefore at-least-once and handlers must tolerate replays.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable

from aiokafka import AIOKafkaConsumer, ConsumerRecord, TopicPartition

from broker.config import (
    CONSUMER_MAX_RETRIES,
    CONSUMER_RETRY_BACKOFF_MS,
    POLL_TIMEOUT_MS,
    TOPICS,
    dlq_topic,
)
from broker.connection import BrokerConnectionManager
from broker.publisher import Publisher
from common.models import EventEnvelope, EventKind, HandlerResult, HandlerStatus

logger = logging.getLogger(__name__)

Handler = Callable[[EventEnvelope], Awaitable[HandlerResult | None]]


class PoisonRecordError(Exception):
    """Record whose key or value can never be turned into an EventEnvelope."""


class HandlerFailedError(Exception):
    """Handler reported FAILED and there is no dead-letter topic to park the record in."""


class DeadLetterError(Exception):
    """The dead-letter topic did not acknowledge a parked record."""


def decode_record(record: ConsumerRecord) -> EventEnvelope:
    """
    Build an envelope from a record: key is the event kind, value the JSON payload.

    Raises PoisonRecordError for unknown event kinds and undecodable payloads.
    """
    try:
        event = EventKind(record.key.decode("utf-8"))
    except ValueError:
        raise PoisonRecordError(f"unknown event kind {record.key!r}") from None
    try:
        data = json.loads(record.value)
    except ValueError as exc:
        raise PoisonRecordError(f"payload is not valid JSON: {exc}") from None
    if not isinstance(data, dict):
        raise PoisonRecordError(f"payload is a JSON {type(data).__name__}, expected an object")

    headers = {k: (v or b"").decode("utf-8", errors="replace") for k, v in record.headers or ()}
    return EventEnvelope(headers=headers, event=event, data=data)


class Subscriber:
    """
    Runs one subscription for the connection manager's consumer.

    With a publisher, records that exhaust their retries (or cannot be decoded)
    are parked in ``<topic>.DLQ`` and committed. Without one, those failures
    propagate and the offset stays where it is.
    """

    def __init__(
        self,
        connections: BrokerConnectionManager,
        publisher: Publisher | None = None,
        max_retries: int = CONSUMER_MAX_RETRIES,
        retry_backoff_ms: int = CONSUMER_RETRY_BACKOFF_MS,
        allowed_topics: Iterable[str] = TOPICS,
        poll_timeout_ms: int = POLL_TIMEOUT_MS,
    ) -> None:
        self._connections = connections
        self._publisher = publisher
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_ms / 1000.0
        self._allowed_topics = frozenset(allowed_topics)
        self._poll_timeout_ms = poll_timeout_ms
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        """Finish the record in hand, commit it, then leave the loop."""
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    async def subscribe(self, handler: Handler, topic: str) -> None:
        consumer = await self._connections.connect_consumer()
        consumer.subscribe([topic])
        allowed = self._allowed_topics | {topic}
        logger.info("Subscribed to %s (group=%s)", topic, self._connections.group_id)

        while not self._stopping.is_set():
            batches = await consumer.getmany(timeout_ms=self._poll_timeout_ms)
            for records in batches.values():
                for record in records:
                    await self.handle_record(consumer, handler, record, allowed)
                    if self._stopping.is_set():
                        break
                if self._stopping.is_set():
                    break

        logger.info("Subscription to %s stopped", topic)

    async def handle_record(
        self,
        consumer: AIOKafkaConsumer,
        handler: Handler,
        record: ConsumerRecord,
        allowed: Iterable[str],
    ) -> HandlerResult | None:
        """Process one record. Returns None when the record was ignored without a commit."""
        if record.topic not in allowed:
            logger.debug("Ignoring record from %s", record.topic)
            return None
        if record.key is None or record.value is None:
            logger.warning(
                "Skipping record without key or value at %s[%d]@%d",
                record.topic,
                record.partition,
                record.offset,
            )
            return None

        try:
            envelope = decode_record(record)
        except PoisonRecordError as exc:
            if self._publisher is None:
                raise
            logger.error("Poison record at %s[%d]@%d: %s", record.topic, record.partition, record.offset, exc)
            await self._dead_letter(record, str(exc), attempts=0)
            result = HandlerResult.failed(str(exc))
        else:
            result = await self._run_handler(handler, envelope, record)

        await self._commit(consumer, record)
        return result

    async def _run_handler(
        self,
        handler: Handler,
        envelope: EventEnvelope,
        record: ConsumerRecord,
    ) -> HandlerResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = await handler(envelope) or HandlerResult.success()
            except Exception as exc:
                if attempt > self._max_retries:
                    if self._publisher is None:
                        raise
                    logger.exception(
                        "Handler gave up on %s at %s[%d]@%d after %d attempts",
                        envelope.event.value,
                        record.topic,
                        record.partition,
                        record.offset,
                        attempt,
                    )
                    await self._dead_letter(record, repr(exc), attempt)
                    return HandlerResult.failed(repr(exc), attempts=attempt)

                delay = self._retry_backoff * 2 ** (attempt - 1)
                logger.warning(
                    "Handler failed on %s (attempt %d/%d): %r; retrying in %.2fs",
                    envelope.event.value,
                    attempt,
                    self._max_retries + 1,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                continue

            if result.status is HandlerStatus.FAILED:
                if self._publisher is None:
                    raise HandlerFailedError(result.reason or "handler failed")
                await self._dead_letter(record, result.reason or "handler failed", attempt)
            elif result.status is HandlerStatus.SKIPPED:
                logger.info(
                    "Skipped %s at %s[%d]@%d: %s",
                    envelope.event.value,
                    record.topic,
                    record.partition,
                    record.offset,
                    result.reason,
                )
            return result

    async def _dead_letter(self, record: ConsumerRecord, error: str, attempts: int) -> None:
        headers: dict[str, str | bytes] = {k: v or b"" for k, v in record.headers or ()}
        headers.update(
            {
                "x-original-topic": record.topic,
                "x-original-partition": str(record.partition),
                "x-original-offset": str(record.offset),
                "x-error": error,
                "x-attempts": str(attempts),
            }
        )
        target = dlq_topic(record.topic)
        acknowledged = await self._publisher.publish_raw(
            target,
            key=record.key,
            value=record.value,
            headers=headers,
        )
        if not acknowledged:
            raise DeadLetterError(f"{target} did not acknowledge record {record.topic}[{record.partition}]@{record.offset}")
        logger.warning("Dead-lettered %s[%d]@%d to %s", record.topic, record.partition, record.offset, target)

    async def _commit(self, consumer: AIOKafkaConsumer, record: ConsumerRecord) -> None:
        await consumer.commit({TopicPartition(record.topic, record.partition): record.offset + 1})
