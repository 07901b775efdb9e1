"""Subscriber: commit-after-handle, bounded retries and the dead-letter topic."""

import pytest
from aiokafka import TopicPartition
from conftest import make_record

from broker.subscriber import DeadLetterError, HandlerFailedError, PoisonRecordError, Subscriber, decode_record
from common.models import EventKind, HandlerResult, HandlerStatus

TOPIC = "CatalogEvents"
ORDER = {"orderInput": {"orderNumber": 100001, "orderItems": []}}


class RecordingHandler:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.seen = []

    async def __call__(self, envelope):
        self.seen.append(envelope)
        outcome = self.outcomes.pop(0) if self.outcomes else HandlerResult.success()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def header(message, name):
    return dict(message.headers)[name].decode("utf-8")


@pytest.fixture
def subscriber(connections, publisher):
    return Subscriber(connections, publisher=publisher, max_retries=2, retry_backoff_ms=0)


@pytest.fixture
async def consumer(connections):
    return await connections.connect_consumer()


def test_decode_record_builds_envelope():
    record = make_record(TOPIC, "ORDER_CREATED", ORDER, headers=[("Authorization", b"Bearer t")])

    envelope = decode_record(record)

    assert envelope.event is EventKind.ORDER_CREATED
    assert envelope.data == ORDER
    assert envelope.headers == {"Authorization": "Bearer t"}


@pytest.mark.parametrize(
    "key, value",
    [
        ("ORDER_SHIPPED", ORDER),
        ("ORDER_CREATED", "not json"),
        ("ORDER_CREATED", [1, 2]),
    ],
)
def test_decode_record_rejects_poison(key, value):
    with pytest.raises(PoisonRecordError):
        decode_record(make_record(TOPIC, key, value))


async def test_success_commits_next_offset(subscriber, consumer):
    handler = RecordingHandler()

    result = await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER, offset=5), [TOPIC])

    assert result.status is HandlerStatus.SUCCESS
    assert consumer.commits == [{TopicPartition(TOPIC, 0): 6}]


async def test_skipped_result_is_committed(subscriber, consumer):
    handler = RecordingHandler(HandlerResult.skipped("nothing to do"))

    result = await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC])

    assert result.status is HandlerStatus.SKIPPED
    assert len(consumer.commits) == 1


async def test_records_from_other_topics_are_ignored(subscriber, consumer):
    handler = RecordingHandler()

    result = await subscriber.handle_record(consumer, handler, make_record("Elsewhere", "ORDER_CREATED", ORDER), [TOPIC])

    assert result is None
    assert handler.seen == []
    assert consumer.commits == []


@pytest.mark.parametrize("key, value", [(None, ORDER), ("ORDER_CREATED", None)])
async def test_records_without_key_or_value_are_skipped(subscriber, consumer, key, value):
    handler = RecordingHandler()
    record = make_record(TOPIC, key, value)

    assert await subscriber.handle_record(consumer, handler, record, [TOPIC]) is None
    assert handler.seen == []
    assert consumer.commits == []


async def test_transient_failure_is_retried(kafka, subscriber, consumer):
    handler = RecordingHandler(RuntimeError("db locked"))

    result = await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC])

    assert result.status is HandlerStatus.SUCCESS
    assert len(handler.seen) == 2
    assert kafka.producers == []


async def test_exhausted_retries_go_to_dead_letter_topic(kafka, subscriber, consumer):
    handler = RecordingHandler(*[RuntimeError("boom")] * 3)
    record = make_record(TOPIC, "ORDER_CREATED", ORDER, partition=1, offset=9)

    result = await subscriber.handle_record(consumer, handler, record, [TOPIC])

    assert result.status is HandlerStatus.FAILED
    assert len(handler.seen) == 3
    [parked] = kafka.producer.messages("CatalogEvents.DLQ")
    assert parked.key == b"ORDER_CREATED"
    assert parked.value == record.value
    assert header(parked, "x-original-topic") == TOPIC
    assert header(parked, "x-original-partition") == "1"
    assert header(parked, "x-original-offset") == "9"
    assert header(parked, "x-attempts") == "3"
    assert "boom" in header(parked, "x-error")
    assert consumer.commits == [{TopicPartition(TOPIC, 1): 10}]


async def test_failed_result_goes_to_dead_letter_topic(kafka, subscriber, consumer):
    handler = RecordingHandler(HandlerResult.failed("no such warehouse"))

    await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC])

    [parked] = kafka.producer.messages("CatalogEvents.DLQ")
    assert header(parked, "x-error") == "no such warehouse"
    assert len(consumer.commits) == 1


async def test_poison_record_is_dead_lettered_without_calling_handler(kafka, subscriber, consumer):
    handler = RecordingHandler()

    result = await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_SHIPPED", ORDER), [TOPIC])

    assert result.status is HandlerStatus.FAILED
    assert handler.seen == []
    assert len(kafka.producer.messages("CatalogEvents.DLQ")) == 1
    assert len(consumer.commits) == 1


async def test_unacknowledged_dead_letter_leaves_offset_uncommitted(kafka, connections, subscriber, consumer):
    producer = await connections.connect_producer()
    producer.acknowledge = False
    handler = RecordingHandler(HandlerResult.failed("bad"))

    with pytest.raises(DeadLetterError):
        await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC])
    assert consumer.commits == []


async def test_without_publisher_failures_propagate(connections, consumer):
    subscriber = Subscriber(connections, max_retries=1, retry_backoff_ms=0)
    handler = RecordingHandler(RuntimeError("boom"), RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        await subscriber.handle_record(consumer, handler, make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC])
    assert consumer.commits == []


async def test_without_publisher_failed_result_raises(connections, consumer):
    subscriber = Subscriber(connections, max_retries=0, retry_backoff_ms=0)

    with pytest.raises(HandlerFailedError):
        await subscriber.handle_record(
            consumer, RecordingHandler(HandlerResult.failed("bad")), make_record(TOPIC, "ORDER_CREATED", ORDER), [TOPIC]
        )
    assert consumer.commits == []


async def test_subscribe_handles_records_in_order_until_stopped(subscriber, consumer):
    handler = RecordingHandler()
    consumer.batches = [
        {TopicPartition(TOPIC, 0): [make_record(TOPIC, "ORDER_CREATED", ORDER, offset=0)]},
        {TopicPartition(TOPIC, 0): [make_record(TOPIC, "ORDER_CANCELED", ORDER, offset=1)]},
    ]
    consumer.on_drained = subscriber.stop

    await subscriber.subscribe(handler, TOPIC)

    assert consumer.subscribed == [TOPIC]
    assert [e.event for e in handler.seen] == [EventKind.ORDER_CREATED, EventKind.ORDER_CANCELED]
    assert consumer.commits == [{TopicPartition(TOPIC, 0): 1}, {TopicPartition(TOPIC, 0): 2}]


async def test_stop_finishes_the_current_record_only(subscriber, consumer):
    async def stop_after_first(envelope):
        subscriber.stop()
        return HandlerResult.success()

    consumer.batches = [
        {
            TopicPartition(TOPIC, 0): [
                make_record(TOPIC, "ORDER_CREATED", ORDER, offset=0),
                make_record(TOPIC, "ORDER_CREATED", ORDER, offset=1),
            ]
        }
    ]

    await subscriber.subscribe(stop_after_first, TOPIC)

    assert subscriber.stopping
    assert consumer.commits == [{TopicPartition(TOPIC, 0): 1}]


async def test_subscribe_never_hands_foreign_topics_to_the_handler(subscriber, consumer):
    handler = RecordingHandler()
    consumer.batches = [
        {
            TopicPartition("Elsewhere", 0): [make_record("Elsewhere", "ORDER_CREATED", ORDER, offset=0)],
            TopicPartition("OrderEvents", 0): [make_record("OrderEvents", "ORDER_CREATED", ORDER, offset=3)],
        }
    ]
    consumer.on_drained = subscriber.stop

    await subscriber.subscribe(handler, "OrderEvents")

    assert len(handler.seen) == 1
    assert consumer.commits == [{TopicPartition("OrderEvents", 0): 4}]


async def test_dead_letter_keeps_undecodable_key_bytes(kafka, subscriber, consumer):
    record = make_record(TOPIC, b"\xffORDER", ORDER, offset=2)

    result = await subscriber.handle_record(consumer, RecordingHandler(), record, [TOPIC])

    assert result.status is HandlerStatus.FAILED
    [parked] = kafka.producer.messages("CatalogEvents.DLQ")
    assert parked.key == b"\xffORDER"
    assert parked.value == record.value
    assert consumer.commits == [{TopicPartition(TOPIC, 0): 3}]
