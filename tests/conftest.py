"""
Shared fixtures: in-memory stand-ins for the aiokafka producer, consumer and
admin client, plus throwaway SQLite databases for both services.
"""

import json
from types import SimpleNamespace

import pytest

from broker import BrokerConnectionManager, Publisher
from catalog_service.storage import init_catalog_db
from order_service.storage import init_order_db


class FakeProducer:
    """Acknowledges every send at the next offset of its partition unless told otherwise."""

    def __init__(self, **config):
        self.config = config
        self.sent = []
        self.started = False
        self.stopped = False
        self.acknowledge = True
        self.error = None

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        if self.error is not None:
            raise self.error
        self.sent.append(SimpleNamespace(topic=topic, key=key, value=value, headers=headers or []))
        if not self.acknowledge:
            return None
        return SimpleNamespace(topic=topic, partition=0, offset=len(self.sent) - 1)

    def messages(self, topic):
        return [m for m in self.sent if m.topic == topic]


class FakeConsumer:
    """Serves queued batches from getmany(); records subscriptions and commits."""

    def __init__(self, **config):
        self.config = config
        self.batches = []
        self.subscribed = []
        self.commits = []
        self.started = False
        self.stopped = False
        self.on_drained = None

    async def start(self):
        self.started = True

    async def stop(self):
        self.stopped = True

    def subscribe(self, topics):
        self.subscribed.extend(topics)

    async def getmany(self, timeout_ms=0):
        if self.batches:
            return self.batches.pop(0)
        if self.on_drained is not None:
            self.on_drained()
        return {}

    async def commit(self, offsets):
        self.commits.append(dict(offsets))


class FakeAdmin:
    def __init__(self, existing=()):
        self.existing = set(existing)
        self.created = []
        self.closed = False

    async def start(self):
        pass

    async def list_topics(self):
        return list(self.existing)

    async def create_topics(self, new_topics):
        self.created.extend(t.name for t in new_topics)
        self.existing.update(t.name for t in new_topics)

    async def close(self):
        self.closed = True


class FakeKafka:
    """One broker's worth of fakes, with factories shaped like the aiokafka constructors."""

    def __init__(self):
        self.admin = FakeAdmin()
        self.producers = []
        self.consumers = []

    def producer_factory(self, **config):
        producer = FakeProducer(**config)
        self.producers.append(producer)
        return producer

    def consumer_factory(self, **config):
        consumer = FakeConsumer(**config)
        self.consumers.append(consumer)
        return consumer

    def admin_factory(self, **config):
        self.admin.config = config
        return self.admin

    @property
    def producer(self):
        return self.producers[-1]

    def connections(self, **kwargs):
        return BrokerConnectionManager(
            client_id=kwargs.pop("client_id", "test-client"),
            group_id=kwargs.pop("group_id", "test-group"),
            producer_factory=self.producer_factory,
            consumer_factory=self.consumer_factory,
            admin_factory=self.admin_factory,
            **kwargs,
        )


def make_record(topic, key, value, partition=0, offset=0, headers=()):
    """Consumer record as the subscriber sees it; dict values are JSON encoded."""
    if isinstance(value, (dict, list)):
        value = json.dumps(value).encode("utf-8")
    elif isinstance(value, str):
        value = value.encode("utf-8")
    return SimpleNamespace(
        topic=topic,
        partition=partition,
        offset=offset,
        key=key.encode("utf-8") if isinstance(key, str) else key,
        value=value,
        headers=tuple(headers),
    )


@pytest.fixture
def kafka():
    return FakeKafka()


@pytest.fixture
def connections(kafka):
    return kafka.connections()


@pytest.fixture
def publisher(connections):
    return Publisher(connections)


@pytest.fixture
def catalog_db(tmp_path):
    db_path = str(tmp_path / "catalog.db")
    init_catalog_db(db_path)
    return db_path


@pytest.fixture
def order_db(tmp_path):
    db_path = str(tmp_path / "orders.db")
    init_order_db(db_path)
    return db_path
