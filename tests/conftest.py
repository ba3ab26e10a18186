import asyncio
from collections import namedtuple
from typing import Any, Callable, Dict, List, Optional, Set

import pytest
from aiokafka import ConsumerRecord, TopicPartition
from aiokafka.errors import KafkaConnectionError

from displaydata.core.config import Settings
from displaydata.core.events import EventConsumer, EventPublisher
from displaydata.services import ContentService, EventLog


RecordMetadata = namedtuple("RecordMetadata", ["topic", "partition", "offset"])


class FakeBroker:
    """
    Single-partition in-memory topic shared by FakeProducer and FakeConsumer.

    ``available`` controls whether clients can start, ``outage`` makes running
    consumers fail and ``send_error`` is raised by every send. ``committed`` holds
    the next offset per consumer group.
    """

    def __init__(self):
        self.records: List[ConsumerRecord] = []
        self.available = True
        self.outage = False
        self.send_error: Optional[Exception] = None
        self.committed: Dict[Optional[str], int] = {}
        self.changed = asyncio.Event()
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.producers: List["FakeProducer"] = []
        self.consumers: List["FakeConsumer"] = []

    def notify(self) -> None:
        # Records may be appended from the test thread while consumers wait on
        # the TestClient's event loop; asyncio.Event is not thread-safe.
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if self.loop is not None and running is not self.loop and not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.changed.set)
        else:
            self.changed.set()

    def append(self, topic: str, key: Optional[bytes], value: Optional[bytes], headers=None) -> ConsumerRecord:
        record = ConsumerRecord(
            topic=topic,
            partition=0,
            offset=len(self.records),
            timestamp=0,
            timestamp_type=0,
            key=key,
            value=value,
            checksum=None,
            serialized_key_size=len(key) if key else -1,
            serialized_value_size=len(value) if value else -1,
            headers=list(headers or []),
        )
        self.records.append(record)
        self.notify()
        return record

    def producer_factory(self, **config) -> "FakeProducer":
        producer = FakeProducer(self, **config)
        self.producers.append(producer)
        return producer

    def consumer_factory(self, topic: str, **config) -> "FakeConsumer":
        consumer = FakeConsumer(self, topic, **config)
        self.consumers.append(consumer)
        return consumer


class FakeProducer:
    def __init__(self, broker: FakeBroker, **config):
        self.broker = broker
        self.config = config
        self.started = False

    async def start(self):
        if not self.broker.available:
            raise KafkaConnectionError("Unable to bootstrap from broker")
        self.started = True

    async def stop(self):
        self.started = False

    async def send_and_wait(self, topic, value=None, key=None, partition=None, timestamp_ms=None, headers=None):
        if self.broker.send_error is not None:
            raise self.broker.send_error
        record = self.broker.append(
            topic,
            self.config["key_serializer"](key),
            self.config["value_serializer"](value),
            headers,
        )
        return RecordMetadata(topic=topic, partition=record.partition, offset=record.offset)


class FakeConsumer:
    def __init__(self, broker: FakeBroker, topic: str, **config):
        self.broker = broker
        self.topic = topic
        self.config = config
        self.group_id = config.get("group_id")
        self._position = broker.committed.get(self.group_id, 0)
        self._stopped = False
        self._assigned: Set[TopicPartition] = set()

    async def start(self):
        if not self.broker.available:
            raise KafkaConnectionError("Unable to bootstrap from broker")
        self._assigned = {TopicPartition(self.topic, 0)}

    async def stop(self):
        self._stopped = True
        self._assigned = set()
        self.broker.notify()

    def assignment(self):
        return set(self._assigned)

    def highwater(self, tp):
        # Same precondition as AIOKafkaConsumer.highwater
        assert tp in self._assigned, "Partition is not assigned"
        return len(self.broker.records)

    def __aiter__(self):
        return self

    async def __anext__(self):
        while True:
            if self._stopped:
                raise StopAsyncIteration
            if self.broker.outage:
                raise KafkaConnectionError("Connection to broker lost")
            if self._position < len(self.broker.records):
                record = self.broker.records[self._position]
                self._position += 1
                # auto-commit
                self.broker.committed[self.group_id] = self._position
                return record
            self.broker.loop = asyncio.get_running_loop()
            self.broker.changed.clear()
            await self.broker.changed.wait()


class RecordingSleep:
    """Stands in for asyncio.sleep in the retry loops and records every delay."""

    def __init__(self, real_delay: float = 0):
        self.calls: List[float] = []
        self.real_delay = real_delay

    async def __call__(self, delay: float):
        self.calls.append(delay)
        await asyncio.sleep(self.real_delay)


async def wait_until(predicate: Callable[[], Any], timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def recording_sleep():
    return RecordingSleep(real_delay=0.001)


@pytest.fixture
def analytics_settings():
    settings = Settings(service_name="analytics-service", port=3003)
    settings.SERVICE_NAME = "analytics-service"
    settings.ENVIRONMENT = "test"
    settings.KAFKA_BROKERS = ["broker-test:9092"]
    settings.KAFKA_TOPIC = "content-events"
    settings.KAFKA_GROUP_ID = "analytics-consumers"
    return settings


@pytest.fixture
def content_settings():
    settings = Settings(service_name="content-service", port=3002)
    settings.SERVICE_NAME = "content-service"
    settings.ENVIRONMENT = "test"
    settings.KAFKA_BROKERS = ["broker-test:9092"]
    settings.KAFKA_TOPIC = "content-events"
    return settings


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def content_service():
    return ContentService()


@pytest.fixture
def publisher(content_settings, broker, recording_sleep):
    return EventPublisher(content_settings, producer_factory=broker.producer_factory, sleep=recording_sleep)


@pytest.fixture
def consumer(analytics_settings, event_log, broker, recording_sleep):
    return EventConsumer(
        analytics_settings,
        event_log,
        consumer_factory=broker.consumer_factory,
        sleep=recording_sleep,
    )
