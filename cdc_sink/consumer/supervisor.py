"""
Connection supervisor.

Owns the broker connection lifecycle:

    IDLE -> CONNECTING -> SUBSCRIBING -> RUNNING -> (SHUTTING_DOWN | RECONNECTING) -> TERMINATED

Connect, subscribe and fatal consume errors move to RECONNECTING, which waits
a fixed delay and tries again until the retry policy is exhausted. This is
the outer retry layer; KafkaBrokerClient.connect() retries on its own
underneath it.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from confluent_kafka import KafkaException

from ..core.errors import BrokerConnectionError, RetryExhaustedError
from .client import KafkaBrokerClient
from .consumer import ConsumeLoop, ShutdownToken
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

RECOVERABLE_ERRORS = (BrokerConnectionError, KafkaException)


class SupervisorState(str, Enum):
    """Connection supervisor lifecycle states."""
    IDLE = "idle"
    CONNECTING = "connecting"
    SUBSCRIBING = "subscribing"
    RUNNING = "running"
    RECONNECTING = "reconnecting"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


class ConnectionSupervisor:
    """Connects, subscribes and keeps the consume loop running."""

    def __init__(
        self,
        client: KafkaBrokerClient,
        consume_loop: ConsumeLoop,
        topic: str,
        retry_policy: RetryPolicy,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client
        self.consume_loop = consume_loop
        self.topic = topic
        self.retry_policy = retry_policy
        self._sleep = sleep

        self.state = SupervisorState.IDLE
        self.attempts = 0

    def _set_state(self, state: SupervisorState) -> None:
        logger.debug(f"Supervisor state {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, token: ShutdownToken) -> SupervisorState:
        """
        Run until the token is cancelled.

        Returns:
            The final state, TERMINATED after a graceful shutdown

        Raises:
            RetryExhaustedError: If the broker stays unavailable for the whole
                retry budget
        """
        while not token.cancelled:
            try:
                await self._connect_and_subscribe()
            except RECOVERABLE_ERRORS as e:
                await self._reconnect(e, token)
                continue

            self._set_state(SupervisorState.RUNNING)
            self.attempts = 0

            try:
                await self.consume_loop.run(token)
            except RECOVERABLE_ERRORS as e:
                logger.error(f"Kafka consumer failed while running: {e}")
                await self._reconnect(e, token)

        await self._shutdown()
        return self.state

    async def _connect_and_subscribe(self) -> None:
        self._set_state(SupervisorState.CONNECTING)
        await asyncio.to_thread(self.client.connect)

        self._set_state(SupervisorState.SUBSCRIBING)
        await asyncio.to_thread(self.client.subscribe, self.topic)

    async def _reconnect(self, error: BaseException, token: ShutdownToken) -> None:
        self._set_state(SupervisorState.RECONNECTING)
        await asyncio.to_thread(self.client.close)

        self.attempts += 1
        logger.warning(
            f"Failed to connect to Kafka, retrying... ({self.attempts}/{self.retry_policy.max_attempts})",
            extra={"error": str(error)},
        )

        if self.retry_policy.exhausted(self.attempts):
            logger.error("Max retries reached, exiting...")
            self._set_state(SupervisorState.TERMINATED)
            raise RetryExhaustedError(self.attempts, error) from error

        if self._sleep is not None:
            await self._sleep(self.retry_policy.delay_seconds)
        else:
            await token.wait(self.retry_policy.delay_seconds)

    async def _shutdown(self) -> None:
        self._set_state(SupervisorState.SHUTTING_DOWN)
        logger.info("Shutting down consumer...")
        await asyncio.to_thread(self.client.close)
        self._set_state(SupervisorState.TERMINATED)
