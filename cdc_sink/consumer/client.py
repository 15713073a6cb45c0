"""
Kafka broker client.

Thin wrapper over confluent_kafka.Consumer that exposes the operations the
supervisor and consume loop need: connect, subscribe, poll and close.
connect() carries its own bounded fixed-delay retry, separate from the
supervisor's reconnect loop.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from confluent_kafka import (
    Consumer,
    KafkaException,
    Message,
    TopicPartition,
    TIMESTAMP_NOT_AVAILABLE,
)

from ..config import KafkaConfig
from ..core.errors import BrokerConnectionError
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawMessage:
    """Message payload plus its broker coordinates."""
    payload: Optional[bytes]
    topic: str
    partition: int
    offset: int
    timestamp: Optional[int] = None
    key: Optional[bytes] = None

    @classmethod
    def from_kafka(cls, message: Message) -> "RawMessage":
        """Build from a confluent_kafka message."""
        ts_type, ts_value = message.timestamp()
        return cls(
            payload=message.value(),
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset(),
            timestamp=None if ts_type == TIMESTAMP_NOT_AVAILABLE else ts_value,
            key=message.key(),
        )


class KafkaBrokerClient:
    """
    Kafka consumer client with auto-committed offsets.

    Offsets are committed by librdkafka in the background
    (``enable.auto.commit``), giving at-least-once delivery.
    """

    def __init__(
        self,
        config: KafkaConfig,
        retry_policy: Optional[RetryPolicy] = None,
        consumer_factory: Callable[[Dict[str, Any]], Consumer] = Consumer,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.connect_retries,
            delay_seconds=config.connect_retry_delay_seconds,
        )
        self._consumer_factory = consumer_factory
        self._sleep = sleep
        self.consumer: Optional[Consumer] = None
        self.available_topics: List[str] = []

    @property
    def connected(self) -> bool:
        return self.consumer is not None

    def connect(self) -> None:
        """
        Create the consumer and verify the brokers answer a metadata request.

        Raises:
            BrokerConnectionError: If the brokers stay unreachable for the whole
                client retry budget
        """
        logger.info("Connecting to Kafka...", extra={"brokers": self.config.brokers})

        try:
            metadata = call_with_retry(
                self._fetch_metadata,
                self.retry_policy,
                retry_on=(KafkaException, BrokerConnectionError),
                sleep=self._sleep,
                description="Kafka connection",
            )
        except (KafkaException, BrokerConnectionError) as e:
            self.close()
            raise BrokerConnectionError(
                f"Could not connect to Kafka brokers {self.config.brokers}: {e}"
            ) from e

        self.available_topics = sorted(metadata.topics.keys())
        logger.info("Connected to Kafka successfully")

    def _fetch_metadata(self):
        if self.consumer is None:
            self.consumer = self._consumer_factory(self.config.client_settings())

        metadata = self.consumer.list_topics(timeout=self.config.metadata_timeout_seconds)
        if metadata is None:
            raise BrokerConnectionError("Failed to retrieve cluster metadata")
        return metadata

    def subscribe(self, topic: str) -> None:
        """Subscribe to a single topic."""
        if self.consumer is None:
            raise BrokerConnectionError("Cannot subscribe before connecting")

        logger.info("Subscribing to topic...", extra={"topic": topic})
        if self.available_topics and topic not in self.available_topics:
            logger.warning(f"Topic {topic} does not exist yet, waiting for it to be created")

        try:
            self.consumer.subscribe([topic], on_assign=self._on_assign, on_revoke=self._on_revoke)
        except (KafkaException, RuntimeError) as e:
            raise BrokerConnectionError(f"Failed to subscribe to {topic}: {e}") from e

        logger.info("Subscribed to topic successfully")

    def _on_assign(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        logger.info(f"Partitions assigned: {[p.partition for p in partitions]}")

    def _on_revoke(self, consumer: Consumer, partitions: List[TopicPartition]) -> None:
        logger.info(f"Partitions revoked: {[p.partition for p in partitions]}")

    def poll(self, timeout: float) -> Optional[Message]:
        """Fetch the next message, or None if nothing arrived within ``timeout``."""
        if self.consumer is None:
            raise BrokerConnectionError("Cannot poll before connecting")
        return self.consumer.poll(timeout)

    def close(self) -> None:
        """Leave the consumer group and release the connection."""
        if self.consumer is None:
            return

        try:
            self.consumer.close()
        except (KafkaException, RuntimeError) as e:
            logger.warning(f"Error while closing Kafka consumer: {e}")
        finally:
            self.consumer = None
            logger.info("Kafka consumer closed")
