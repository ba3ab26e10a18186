"""
FastAPI dependencies. Each service wires its collaborators onto ``app.state``
at construction time and the routes pull them from there, so tests can swap any
of them without patching module globals.
"""
from fastapi import Request

from displaydata.core.config import Settings
from displaydata.core.events import EventConsumer, EventPublisher, ManagedConnection
from displaydata.services import ContentService, EventLog


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_kafka_client(request: Request) -> ManagedConnection:
    """The service's broker client, publisher or consumer."""
    return request.app.state.kafka


def get_event_log(request: Request) -> EventLog:
    return request.app.state.event_log


def get_consumer(request: Request) -> EventConsumer:
    return request.app.state.kafka


def get_publisher(request: Request) -> EventPublisher:
    return request.app.state.kafka


def get_content_service(request: Request) -> ContentService:
    return request.app.state.content_service
