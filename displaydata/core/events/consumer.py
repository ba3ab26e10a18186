"""
Event Consumer Module - Ingests content events from Kafka into the event log
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaError

from displaydata.core.config import Settings
from displaydata.schemas.events import Event, EventPayload, TransportMeta
from displaydata.services.event_log import EventLog
from .connection import ManagedConnection, SleepFunc

logger = logging.getLogger(__name__)


class EventConsumer(ManagedConnection):
    """
    Kafka consumer that replays the topic from the earliest offset under the
    analytics consumer group and appends every parsable message to the event log.

    Offsets are committed by aiokafka's auto-commit, so delivery is at least once.
    """

    name = "Kafka consumer"

    def __init__(
        self,
        settings: Settings,
        event_log: EventLog,
        consumer_factory: Callable[..., Any] = AIOKafkaConsumer,
        sleep: SleepFunc = asyncio.sleep,
    ):
        super().__init__(settings, sleep=sleep)
        self.event_log = event_log
        self.topic = settings.KAFKA_TOPIC
        self.group_id = settings.KAFKA_GROUP_ID
        self.consumer: Optional[Any] = None
        self._consumer_factory = consumer_factory
        self.messages_consumed = 0
        self.messages_skipped = 0
        self._offsets: Dict[Tuple[str, int], int] = {}

    async def _open(self) -> None:
        # No value_deserializer: a payload that fails to decode must be skipped
        # by handle_message, not raised out of the consumer iterator.
        self.consumer = self._consumer_factory(
            self.topic,
            bootstrap_servers=self.settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=self.settings.KAFKA_CLIENT_ID,
            group_id=self.group_id,
            auto_offset_reset=self.settings.KAFKA_AUTO_OFFSET_RESET,
            enable_auto_commit=True,
            request_timeout_ms=self.settings.KAFKA_REQUEST_TIMEOUT_MS,
            retry_backoff_ms=self.settings.KAFKA_RETRY_BACKOFF_MS,
        )
        await self.consumer.start()
        logger.info(
            "Kafka consumer connected and subscribed",
            extra={"brokers": self.settings.KAFKA_BROKERS, "topic": self.topic, "groupId": self.group_id}
        )

    async def _serve(self) -> None:
        async for record in self.consumer:
            self.handle_message(record)

    async def _close(self) -> None:
        consumer, self.consumer = self.consumer, None
        if consumer is not None:
            await consumer.stop()

    def handle_message(self, record: Any) -> Optional[Event]:
        """
        Parse one consumer record and append it to the event log.

        Returns the stored event, or None when the payload was malformed and skipped.
        """
        try:
            if record.value is None:
                raise ValueError("empty message value")
            payload = EventPayload.model_validate_json(record.value)
        except (ValueError, TypeError) as e:
            self.messages_skipped += 1
            logger.error(
                "Failed to process Kafka message",
                extra={"error": str(e), "partition": record.partition, "offset": record.offset}
            )
            return None

        key = record.key.decode('utf-8', errors='replace') if isinstance(record.key, bytes) else record.key
        transport = TransportMeta(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            key=key,
        )

        event = self.event_log.append(payload, transport=transport)
        self.messages_consumed += 1
        self._offsets[(record.topic, record.partition)] = record.offset

        logger.info(
            "Event consumed from Kafka",
            extra={
                "eventId": event.id,
                "source": event.source,
                "action": event.action,
                "offset": record.offset,
                "partition": record.partition,
            }
        )
        return event

    def partition_status(self) -> List[Dict[str, Any]]:
        """Last consumed offset per partition, with lag when the broker high-water mark is known."""
        rows = []
        assigned = self._assigned_partitions()
        for (topic, partition), offset in sorted(self._offsets.items()):
            tp = TopicPartition(topic, partition)
            highwater = None
            # highwater() asserts on partitions this client does not own, e.g.
            # before a new client joins the group or after a rebalance
            if tp in assigned:
                try:
                    highwater = self.consumer.highwater(tp)
                except KafkaError:
                    highwater = None
            rows.append({
                "topic": topic,
                "partition": partition,
                "offset": offset,
                "highwater": highwater,
                "lag": max(highwater - (offset + 1), 0) if highwater is not None else None,
            })
        return rows

    def _assigned_partitions(self) -> Set[TopicPartition]:
        if self.consumer is None:
            return set()
        try:
            return set(self.consumer.assignment())
        except KafkaError:
            return set()

    def status(self) -> Dict[str, Any]:
        return {
            **self.connection_summary(),
            "groupId": self.group_id,
            "messagesConsumed": self.messages_consumed,
            "messagesSkipped": self.messages_skipped,
            "eventsStored": len(self.event_log),
            "partitions": self.partition_status(),
        }
