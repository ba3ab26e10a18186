"""
Event Publisher Module - Publishes content events to the Kafka topic
"""
import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import (
    KafkaConnectionError,
    KafkaTimeoutError,
    NodeNotReadyError,
    RequestTimedOutError,
)

from displaydata.core.config import Settings
from .connection import ManagedConnection, SleepFunc

logger = logging.getLogger(__name__)

# Send errors aiokafka raises when the broker is gone. A metadata wait or an
# expired batch surfaces as KafkaTimeoutError rather than a connection error.
CONNECTION_LOSS_ERRORS = (KafkaConnectionError, KafkaTimeoutError, NodeNotReadyError, RequestTimedOutError)


class PublishStatus(str, Enum):
    PUBLISHED = "published"
    DROPPED = "dropped"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish attempt. Callers log or discard it, it is never raised."""
    status: PublishStatus
    topic: str
    action: str
    key: str
    partition: Optional[int] = None
    offset: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is PublishStatus.PUBLISHED


class EventPublisher(ManagedConnection):
    """
    Event publisher for the content-events topic.

    Publishing is best effort: while the producer is not connected events are
    dropped with a warning, and a broker error drops the event with an error log.
    """

    name = "Kafka producer"

    def __init__(
        self,
        settings: Settings,
        producer_factory: Callable[..., Any] = AIOKafkaProducer,
        sleep: SleepFunc = asyncio.sleep,
    ):
        super().__init__(settings, sleep=sleep)
        self.source = settings.SERVICE_NAME
        self.topic = settings.KAFKA_TOPIC
        self.producer: Optional[Any] = None
        self._producer_factory = producer_factory
        self._connection_lost = asyncio.Event()
        self.published = 0
        self.dropped = 0
        self.failed = 0

    async def _open(self) -> None:
        self._connection_lost.clear()
        self.producer = self._producer_factory(
            bootstrap_servers=self.settings.KAFKA_BOOTSTRAP_SERVERS,
            client_id=self.settings.KAFKA_CLIENT_ID,
            value_serializer=lambda v: json.dumps(v, default=str).encode('utf-8'),
            key_serializer=lambda k: k.encode('utf-8') if k else None,
            request_timeout_ms=self.settings.KAFKA_REQUEST_TIMEOUT_MS,
            retry_backoff_ms=self.settings.KAFKA_RETRY_BACKOFF_MS,
        )
        await self.producer.start()
        logger.info(
            "Kafka producer connected",
            extra={"brokers": self.settings.KAFKA_BROKERS, "topic": self.topic}
        )

    async def _serve(self) -> None:
        # The producer has no receive loop. Wait until a send reports a dead connection.
        await self._connection_lost.wait()
        raise KafkaConnectionError("send failed, broker connection lost")

    async def _close(self) -> None:
        producer, self.producer = self.producer, None
        if producer is not None:
            await producer.stop()

    async def publish(self, action: str, item_id: Optional[str] = None, **extra: Any) -> PublishResult:
        """
        Publish a domain event for ``action`` on ``item_id``.

        Extra keyword arguments are merged into the payload; they may override
        ``ts`` but not ``source``, ``action`` or ``itemId``.
        """
        key = item_id or action

        if not self.is_connected or self.producer is None:
            self.dropped += 1
            logger.warning(
                "Kafka producer not connected - event dropped",
                extra={"action": action, "itemId": item_id}
            )
            return PublishResult(PublishStatus.DROPPED, self.topic, action, key, error="not connected")

        event: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            **extra,
            "source": self.source,
            "action": action,
            "itemId": item_id,
        }
        headers = [
            ("source", self.source.encode('utf-8')),
            ("env", self.settings.ENVIRONMENT.encode('utf-8')),
        ]

        try:
            metadata = await self.producer.send_and_wait(self.topic, value=event, key=key, headers=headers)
        except CONNECTION_LOSS_ERRORS as e:
            self.failed += 1
            logger.error(
                f"Failed to publish event {action} to {self.topic}: broker unreachable",
                extra={"action": action, "itemId": item_id, "error": str(e) or type(e).__name__}
            )
            self._connection_lost.set()
            return PublishResult(PublishStatus.FAILED, self.topic, action, key, error=str(e))
        except Exception as e:
            self.failed += 1
            logger.error(
                f"Failed to publish event {action} to {self.topic}: {e}",
                extra={"action": action, "itemId": item_id},
                exc_info=True
            )
            return PublishResult(PublishStatus.FAILED, self.topic, action, key, error=str(e))

        self.published += 1
        logger.info(
            "Event published to Kafka",
            extra={
                "topic": self.topic,
                "action": action,
                "itemId": item_id,
                "partition": metadata.partition,
                "offset": metadata.offset,
            }
        )
        return PublishResult(
            PublishStatus.PUBLISHED,
            self.topic,
            action,
            key,
            partition=metadata.partition,
            offset=metadata.offset,
        )

    def status(self) -> Dict[str, Any]:
        return {
            **self.connection_summary(),
            "published": self.published,
            "dropped": self.dropped,
            "failed": self.failed,
        }
