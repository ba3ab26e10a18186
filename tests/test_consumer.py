"""
Tests for the content-events consumer: ingestion, malformed messages, outages
and the publisher to consumer round trip.
"""
import json

import pytest
from aiokafka import AIOKafkaConsumer
from hypothesis import HealthCheck, given, settings, strategies as st

from displaydata.core.events import ConnectionState, EventConsumer
from displaydata.services import EventLog

from conftest import FakeBroker, wait_until


def good(broker: FakeBroker, action: str, item_id: str = None, source: str = "content-service"):
    value = json.dumps({"source": source, "action": action, "itemId": item_id, "ts": "2025-06-01T10:00:00Z"})
    key = (item_id or action).encode()
    return broker.append("content-events", key, value.encode())


class TestHandleMessage:
    """Test consumer.handle_message directly on records."""

    def test_valid_message_is_appended_with_transport(self, consumer, broker, event_log):
        record = good(broker, "create", "C005")

        event = consumer.handle_message(record)

        assert event.id == "E00001"
        assert event.source == "content-service"
        assert event.item_id == "C005"
        assert event.ts == "2025-06-01T10:00:00Z"
        assert event.transport.topic == "content-events"
        assert event.transport.partition == 0
        assert event.transport.offset == 0
        assert event.transport.key == "C005"
        assert consumer.messages_consumed == 1
        assert list(event_log) == [event]

    @pytest.mark.parametrize("value", [
        b"invalid json {{{",
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"source": 42, "action": "view"}',
        b"\xff\xfe\x00",
        None,
    ])
    def test_malformed_message_is_skipped(self, consumer, broker, event_log, value):
        record = broker.append("content-events", b"k", value)

        assert consumer.handle_message(record) is None
        assert len(event_log) == 0
        assert consumer.messages_consumed == 0
        assert consumer.messages_skipped == 1

    def test_bad_message_between_two_good_ones(self, consumer, broker, event_log):
        records = [
            good(broker, "create", "C005"),
            broker.append("content-events", b"bad", b"not-json"),
            good(broker, "delete", "C005"),
        ]

        for record in records:
            consumer.handle_message(record)

        assert [e.id for e in event_log] == ["E00001", "E00002"]
        assert [e.action for e in event_log] == ["create", "delete"]
        assert [e.transport.offset for e in event_log] == [0, 2]
        assert consumer.messages_consumed == 2
        assert consumer.messages_skipped == 1

    def test_missing_fields_default_to_unknown(self, consumer, broker):
        record = broker.append("content-events", None, b'{"itemId": ""}')

        event = consumer.handle_message(record)

        assert (event.source, event.action, event.item_id) == ("unknown", "unknown", None)
        assert event.transport.key is None

    @pytest.mark.parametrize("item_id, expected", [(5, "5"), (12.5, "12.5"), (0, None), ("C007", "C007")])
    def test_numeric_item_id_is_accepted(self, consumer, broker, event_log, item_id, expected):
        value = json.dumps({"source": "content-service", "action": "view", "itemId": item_id})
        record = broker.append("content-events", b"view", value.encode())

        event = consumer.handle_message(record)

        assert event is not None
        assert event.item_id == expected
        assert consumer.messages_skipped == 0
        assert len(event_log) == 1

    @pytest.mark.asyncio
    async def test_partition_status_reports_lag(self, consumer, broker):
        records = [good(broker, "view", f"C00{i}") for i in range(1, 5)]
        consumer.handle_message(records[0])
        consumer.handle_message(records[1])
        consumer.consumer = broker.consumer_factory("content-events")
        await consumer.consumer.start()

        rows = consumer.partition_status()

        assert rows == [{"topic": "content-events", "partition": 0, "offset": 1, "highwater": 4, "lag": 2}]

    def test_partition_status_for_unassigned_partition(self, consumer, broker):
        consumer.handle_message(good(broker, "view", "C001"))
        # A fresh client that has not joined the group yet owns no partitions
        consumer.consumer = broker.consumer_factory("content-events")

        rows = consumer.partition_status()

        assert rows == [{"topic": "content-events", "partition": 0, "offset": 0, "highwater": None, "lag": None}]

    @pytest.mark.asyncio
    async def test_partition_status_with_unstarted_aiokafka_client(self, consumer, broker):
        consumer.handle_message(good(broker, "view", "C001"))
        client = AIOKafkaConsumer("content-events", bootstrap_servers="localhost:1")
        consumer.consumer = client

        try:
            rows = consumer.partition_status()
        finally:
            await client.stop()

        assert rows[0]["highwater"] is None
        assert rows[0]["offset"] == 0


@given(stream=st.lists(st.one_of(
    st.sampled_from(["view", "create", "delete"]),
    st.binary(max_size=20).filter(lambda b: not b.strip().startswith(b"{")),
), max_size=40))
@settings(max_examples=100, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_property_log_order_matches_delivery_order(stream, analytics_settings):
    """
    For any mix of valid events and garbage, the log holds exactly the valid
    events in delivery order with gapless ids.
    """
    broker = FakeBroker()
    log = EventLog()
    consumer = EventConsumer(analytics_settings, log, consumer_factory=broker.consumer_factory)

    delivered = []
    for i, item in enumerate(stream):
        if isinstance(item, str):
            record = good(broker, item, f"C{i:03d}")
            delivered.append((item, record.offset))
        else:
            record = broker.append("content-events", None, item)
        consumer.handle_message(record)

    assert [(e.action, e.transport.offset) for e in log] == delivered
    assert [e.id for e in log] == [f"E{n:05d}" for n in range(1, len(delivered) + 1)]
    assert consumer.messages_consumed == len(delivered)


class TestSubscribeLoop:
    """Test the background subscribe loop against the fake broker."""

    @pytest.mark.asyncio
    async def test_consumes_from_earliest_offset(self, consumer, broker, event_log):
        good(broker, "create", "C005")
        good(broker, "view", "C005")

        consumer.start()
        await wait_until(lambda: len(event_log) == 2)

        config = broker.consumers[0].config
        assert broker.consumers[0].topic == "content-events"
        assert config["group_id"] == "analytics-consumers"
        assert config["auto_offset_reset"] == "earliest"
        assert config["enable_auto_commit"] is True
        assert "value_deserializer" not in config

        good(broker, "delete", "C005")
        await wait_until(lambda: len(event_log) == 3)
        assert [e.action for e in event_log] == ["create", "view", "delete"]

        await consumer.stop()
        assert consumer.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_outage_during_subscribe_then_recovery(self, consumer, broker, event_log, recording_sleep):
        broker.available = False
        consumer.start()
        await wait_until(lambda: consumer.connect_attempts >= 3)

        assert consumer.state_machine.health == "reconnecting"
        assert consumer.last_error is not None
        assert set(recording_sleep.calls) == {consumer.retry_delay}

        good(broker, "create", "C005")
        attempts_at_recovery = consumer.connect_attempts
        broker.available = True
        await wait_until(lambda: consumer.is_connected and len(event_log) == 1)

        # Connected on the first attempt after the broker came back
        assert consumer.connect_attempts <= attempts_at_recovery + 1
        assert consumer.messages_consumed == 1

        await consumer.stop()

    @pytest.mark.asyncio
    async def test_mid_stream_failure_resumes_without_restart(self, consumer, broker, event_log, recording_sleep):
        consumer.start()
        good(broker, "create", "C005")
        await wait_until(lambda: len(event_log) == 1)

        broker.outage = True
        broker.notify()
        await wait_until(lambda: consumer.state is not ConnectionState.CONNECTED)
        assert consumer.state_machine.health == "reconnecting"

        broker.outage = False
        good(broker, "delete", "C005")
        await wait_until(lambda: consumer.is_connected and any(e.action == "delete" for e in event_log))

        # The new client resumes from the committed offset, nothing is replayed
        assert [e.action for e in event_log] == ["create", "delete"]
        assert len(broker.consumers) >= 2
        assert recording_sleep.calls[0] == consumer.retry_delay

        await consumer.stop()


class TestRoundTrip:

    @pytest.mark.asyncio
    async def test_published_events_reach_the_log_exactly_once(self, publisher, consumer, broker, event_log):
        publisher.start()
        consumer.start()
        await wait_until(lambda: publisher.is_connected and consumer.is_connected)

        await publisher.publish("create", "C005")
        await publisher.publish("delete", "C005")
        await wait_until(lambda: len(event_log) == 2)

        deletes = event_log.query(action="delete")
        stats = event_log.aggregate()
        assert [(e.id, e.item_id) for e in deletes.events] == [("E00002", "C005")]
        assert stats.by_source == {"content-service": 2}
        assert stats.by_action == {"create": 1, "delete": 1}
        assert consumer.messages_consumed == 2

        await publisher.stop()
        await consumer.stop()

    @pytest.mark.asyncio
    async def test_publish_while_down_never_reaches_the_log(self, publisher, consumer, broker, event_log):
        consumer.start()
        await wait_until(lambda: consumer.is_connected)

        result = await publisher.publish("create", "C005")

        assert result.ok is False
        assert broker.records == []
        assert len(event_log) == 0

        await consumer.stop()
