"""
Broker connection lifecycle shared by the event publisher and the event consumer.

A ManagedConnection owns one aiokafka client and keeps it alive with a fixed
delay retry loop. Its state only moves along the edges of ALLOWED_TRANSITIONS:

    disconnected -> connecting -> connected -> reconnecting -> connecting -> ...

Before the first successful connect a failed attempt falls back to
``disconnected``. Afterwards failures go through ``reconnecting``.
"""
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional

from displaydata.core.config import Settings

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


ALLOWED_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.RECONNECTING,
    }),
    ConnectionState.CONNECTED: frozenset({ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED}),
    ConnectionState.RECONNECTING: frozenset({ConnectionState.CONNECTING, ConnectionState.DISCONNECTED}),
}


class InvalidStateTransition(RuntimeError):
    """Raised when a connection is asked to move along an edge it does not have."""

    def __init__(self, current: ConnectionState, requested: ConnectionState):
        self.current = current
        self.requested = requested
        super().__init__(f"Illegal connection state transition {current.value} -> {requested.value}")


class ConnectionStateMachine:
    """Current connection state plus the rules for changing it."""

    def __init__(self, name: str = "kafka"):
        self.name = name
        self._state = ConnectionState.DISCONNECTED
        self._ever_connected = False
        self.changed_at = datetime.now(timezone.utc)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def ever_connected(self) -> bool:
        return self._ever_connected

    @property
    def health(self) -> str:
        """The two-valued broker status reported by /health."""
        return "connected" if self.is_connected else "reconnecting"

    def transition(self, new_state: ConnectionState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidStateTransition(self._state, new_state)

        logger.debug(f"{self.name} state {self._state.value} -> {new_state.value}")
        self._state = new_state
        self.changed_at = datetime.now(timezone.utc)
        if new_state is ConnectionState.CONNECTED:
            self._ever_connected = True


class ManagedConnection:
    """
    Base class for a broker client that reconnects forever on a fixed timer.

    Subclasses implement three hooks:
      _open()  -- build and start the client; raising means the attempt failed
      _serve() -- run while connected; returning or raising means the connection is gone
      _close() -- stop the client, may be called when it was never started
    """

    name = "Kafka client"

    def __init__(self, settings: Settings, sleep: SleepFunc = asyncio.sleep):
        self.settings = settings
        self.retry_delay = settings.KAFKA_RETRY_DELAY_SECONDS
        self.shutdown_timeout = settings.KAFKA_SHUTDOWN_TIMEOUT_SECONDS
        self.state_machine = ConnectionStateMachine(self.name)
        self._sleep = sleep
        self._stopping = False
        self._task: Optional[asyncio.Task] = None
        self.connect_attempts = 0
        self.last_error: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        return self.state_machine.state

    @property
    def is_connected(self) -> bool:
        return self.state_machine.is_connected

    async def _open(self) -> None:
        raise NotImplementedError

    async def _serve(self) -> None:
        raise NotImplementedError

    async def _close(self) -> None:
        raise NotImplementedError

    def start(self) -> asyncio.Task:
        """Launch the retry loop as a background task and return immediately."""
        if self._task is None or self._task.done():
            self._stopping = False
            self._task = asyncio.create_task(self.run(), name=f"{self.name} retry loop")
        return self._task

    async def run(self) -> None:
        """Connect, serve, and on any failure wait ``retry_delay`` and start over."""
        while not self._stopping:
            self.state_machine.transition(ConnectionState.CONNECTING)
            self.connect_attempts += 1

            try:
                await self._open()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e)
                logger.error(
                    f"{self.name} failed to connect - will retry in {self.retry_delay:g}s",
                    extra={"error": str(e), "attempt": self.connect_attempts}
                )
                await self._close_quietly()
                self.state_machine.transition(
                    ConnectionState.RECONNECTING if self.state_machine.ever_connected
                    else ConnectionState.DISCONNECTED
                )
                await self._sleep(self.retry_delay)
                continue

            self.state_machine.transition(ConnectionState.CONNECTED)
            self.last_error = None

            try:
                await self._serve()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e)
                logger.error(f"{self.name} lost its broker connection", extra={"error": str(e)})
            else:
                if not self._stopping:
                    logger.warning(f"{self.name} connection closed by the broker client")

            if self._stopping:
                break

            self.state_machine.transition(ConnectionState.RECONNECTING)
            await self._close_quietly()
            logger.info(f"{self.name} reconnecting in {self.retry_delay:g}s")
            await self._sleep(self.retry_delay)

    async def _close_quietly(self) -> None:
        try:
            await asyncio.wait_for(self._close(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} did not close within {self.shutdown_timeout:g}s")
        except Exception as e:
            logger.warning(f"{self.name} close failed: {e}")

    async def stop(self) -> None:
        """Stop retrying and disconnect, giving up after ``shutdown_timeout`` seconds."""
        logger.info(f"Shutting down - disconnecting {self.name}")
        self._stopping = True

        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"{self.name} retry loop ended with an error: {e}")
        self._task = None

        await self._close_quietly()

        if self.state_machine.state is not ConnectionState.DISCONNECTED:
            self.state_machine.transition(ConnectionState.DISCONNECTED)

    def connection_summary(self) -> Dict[str, Any]:
        return {
            "connected": self.is_connected,
            "state": self.state.value,
            "brokers": self.settings.KAFKA_BROKERS,
            "topic": self.settings.KAFKA_TOPIC,
            "connectAttempts": self.connect_attempts,
            "lastError": self.last_error,
        }
