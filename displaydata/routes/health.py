# Liveness and broker status endpoints shared by both services

import socket

from fastapi import APIRouter, Depends

from displaydata.core.config import Settings
from displaydata.core.dependencies import get_kafka_client, get_settings
from displaydata.core.events import ManagedConnection

router = APIRouter(tags=["health"])


@router.get("/")
async def read_root(
    settings: Settings = Depends(get_settings),
    kafka: ManagedConnection = Depends(get_kafka_client),
):
    return {
        "message": f"Hello from {settings.SERVICE_NAME}!",
        "env": settings.ENVIRONMENT,
        "hostname": socket.gethostname(),
        "kafka": kafka.status(),
    }


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    kafka: ManagedConnection = Depends(get_kafka_client),
):
    """
    Liveness check - always 200 while the process serves HTTP.
    Broker connectivity is reported separately in the ``kafka`` field.
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "env": settings.ENVIRONMENT,
        "kafka": kafka.state_machine.health,
    }


@router.get("/kafka-status")
async def kafka_status(
    settings: Settings = Depends(get_settings),
    kafka: ManagedConnection = Depends(get_kafka_client),
):
    return {
        "service": settings.SERVICE_NAME,
        "kafka": kafka.status(),
    }
