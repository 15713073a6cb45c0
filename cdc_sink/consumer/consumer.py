"""
Kafka consume loop for the CDC event sink.

This module provides:
- The per-message pipeline: decode, classify, instrument
- The polling loop with cooperative shutdown
- Consume statistics for health reporting

Messages are handled one at a time in delivery order. The next poll only
happens after the previous message has been fully handled, so ordering
within a partition is preserved.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from confluent_kafka import KafkaError, Message

from ..core.errors import BrokerConnectionError, DecodeError, ProcessingError
from ..core.logging import EventLogger
from ..monitoring.instrumentation import Instrumentation
from ..monitoring.metrics import MetricsRegistry
from .classifier import EventClassifier
from .client import KafkaBrokerClient, RawMessage
from .decoder import EventDecoder

logger = logging.getLogger(__name__)


class ShutdownToken:
    """One-shot cancellation signal shared by the supervisor and the loop."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for cancellation; returns whether it happened within ``timeout``."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()


@dataclass
class ConsumeStats:
    """Consume loop counters for health reporting."""
    messages_received: int = 0
    empty_messages: int = 0
    decode_failures: int = 0
    events_skipped: int = 0
    events_recorded: int = 0
    recording_failures: int = 0
    last_message_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages_received": self.messages_received,
            "empty_messages": self.empty_messages,
            "decode_failures": self.decode_failures,
            "events_skipped": self.events_skipped,
            "events_recorded": self.events_recorded,
            "recording_failures": self.recording_failures,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
        }


class ConsumeLoop:
    """
    Drives message delivery from the broker client through the pipeline.

    Per-message failures are logged and never escape handle_message. Only
    fatal broker errors leave run(), for the supervisor to reconnect.
    """

    def __init__(
        self,
        client: KafkaBrokerClient,
        metrics: MetricsRegistry,
        instrumentation: Instrumentation,
        decoder: Optional[EventDecoder] = None,
        classifier: Optional[EventClassifier] = None,
        event_logger: Optional[EventLogger] = None,
        poll_timeout: float = 1.0,
    ):
        self.client = client
        self.metrics = metrics
        self.instrumentation = instrumentation
        self.decoder = decoder or EventDecoder()
        self.classifier = classifier or EventClassifier()
        self.event_logger = event_logger or EventLogger()
        self.poll_timeout = poll_timeout

        self.stats = ConsumeStats()
        self.running = False

    async def run(self, token: ShutdownToken) -> None:
        """
        Poll and handle messages until the token is cancelled.

        Raises:
            BrokerConnectionError: On a fatal broker error
        """
        self.running = True
        logger.info("Kafka consumer is running")

        try:
            while not token.cancelled:
                message = await asyncio.to_thread(self.client.poll, self.poll_timeout)
                if message is None:
                    continue

                if message.error() is not None:
                    self._handle_broker_error(message)
                    continue

                self.handle_message(RawMessage.from_kafka(message))
        finally:
            self.running = False

    def _handle_broker_error(self, message: Message) -> None:
        error = message.error()
        if error.code() == KafkaError._PARTITION_EOF:
            logger.debug(f"Reached end of partition {message.partition()}")
            return

        if error.fatal():
            raise BrokerConnectionError(f"Fatal Kafka error: {error}")

        logger.error(f"Kafka error: {error}")

    def handle_message(self, message: RawMessage) -> None:
        """Run one delivered message through decode, classify and instrument."""
        self.metrics.record_message_received()
        self.stats.messages_received += 1
        self.stats.last_message_at = datetime.now(timezone.utc)

        if not message.payload:
            self.stats.empty_messages += 1
            logger.warning(
                "Received empty message",
                extra={"topic": message.topic, "partition": message.partition},
            )
            return

        logger.debug(
            "Received Kafka message",
            extra={
                "topic": message.topic,
                "partition": message.partition,
                "offset": message.offset,
                "kafka_timestamp": message.timestamp,
            },
        )

        try:
            event = self.decoder.decode(message.payload)
        except DecodeError as e:
            self.stats.decode_failures += 1
            logger.error(
                "Failed to parse CDC event",
                extra={
                    "error": str(e.cause),
                    "raw_message": e.payload_text(),
                    "topic": message.topic,
                    "partition": message.partition,
                    "offset": message.offset,
                },
            )
            return
        except Exception as e:
            self.stats.decode_failures += 1
            logger.error(
                f"Unexpected error decoding message {message.topic}:{message.partition}:{message.offset}: {e}",
                extra={"error_type": type(e).__name__},
            )
            return

        try:
            outcome = self.classifier.classify(event)
            if outcome.skip:
                self.stats.events_skipped += 1
                self.event_logger.log_skipped(event)
                return

            if self.instrumentation.record(event, outcome.category):
                self.stats.events_recorded += 1
            else:
                self.stats.recording_failures += 1
        except Exception as e:
            self.stats.recording_failures += 1
            error = ProcessingError(event.table, event.operation, e)
            logger.error(
                f"Failed to process message {message.topic}:{message.partition}:{message.offset}: {error}"
            )
