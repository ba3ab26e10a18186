"""
Kafka event pipeline: a best-effort publisher for the content service and an
at-least-once consumer for the analytics service, both kept alive by a fixed
delay reconnect loop.
"""

from .connection import (
    ALLOWED_TRANSITIONS,
    ConnectionState,
    ConnectionStateMachine,
    InvalidStateTransition,
    ManagedConnection,
)
from .publisher import EventPublisher, PublishResult, PublishStatus
from .consumer import EventConsumer

__all__ = [
    'ALLOWED_TRANSITIONS',
    'ConnectionState',
    'ConnectionStateMachine',
    'InvalidStateTransition',
    'ManagedConnection',
    'EventPublisher',
    'PublishResult',
    'PublishStatus',
    'EventConsumer',
]
