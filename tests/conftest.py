"""
Test configuration and fixtures for the CDC event sink tests.

This module provides:
- Sample Canal JSON payloads
- A fresh metrics registry per test
- Mock Kafka messages and a fake broker client
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest
from confluent_kafka import TIMESTAMP_CREATE_TIME

from cdc_sink.core.errors import BrokerConnectionError
from cdc_sink.monitoring import MetricsRegistry


@pytest.fixture
def sample_insert_event() -> Dict[str, Any]:
    """Sample Canal INSERT event."""
    return {
        "database": "app_db",
        "table": "users",
        "type": "INSERT",
        "isDdl": False,
        "ts": 1700000000000,
        "data": [{"id": 1}],
        "old": [],
    }


@pytest.fixture
def sample_update_event() -> Dict[str, Any]:
    """Sample Canal UPDATE event with before and after images."""
    return {
        "id": 7,
        "database": "app_db",
        "table": "orders",
        "pkNames": ["id"],
        "isDdl": False,
        "type": "UPDATE",
        "es": 1700000000100,
        "ts": 1700000000123,
        "sql": "",
        "data": [{"id": "42", "status": "shipped"}],
        "old": [{"status": "pending"}],
    }


@pytest.fixture
def sample_ddl_event() -> Dict[str, Any]:
    """Sample Canal DDL event."""
    return {"type": "UPDATE", "isDdl": True, "database": "app_db"}


@pytest.fixture
def encode():
    """Encode a dict as a Kafka message value."""
    def _encode(document: Dict[str, Any]) -> bytes:
        return json.dumps(document).encode("utf-8")
    return _encode


@pytest.fixture
def metrics() -> MetricsRegistry:
    """Isolated metrics registry without process collectors."""
    return MetricsRegistry(default_collectors=False)


@pytest.fixture
def mock_kafka_message():
    """Factory for mock confluent_kafka messages."""
    def _make(
        value: Optional[bytes],
        topic: str = "cdc_events",
        partition: int = 0,
        offset: int = 0,
        error=None,
    ) -> Mock:
        msg = Mock()
        msg.value.return_value = value
        msg.topic.return_value = topic
        msg.partition.return_value = partition
        msg.offset.return_value = offset
        msg.key.return_value = None
        msg.timestamp.return_value = (TIMESTAMP_CREATE_TIME, 1700000000000)
        msg.error.return_value = error
        return msg

    return _make


class FakeBrokerClient:
    """In-memory stand-in for KafkaBrokerClient."""

    def __init__(
        self,
        messages: Optional[List[Any]] = None,
        connect_failures: int = 0,
        subscribe_failures: int = 0,
    ):
        self.messages = list(messages or [])
        self.connect_failures = connect_failures
        self.subscribe_failures = subscribe_failures

        self.connect_calls = 0
        self.subscribe_calls = 0
        self.close_calls = 0
        self.subscribed: List[str] = []

        self._on_drained = None
        self._loop = None

    def stop_when_drained(self, cancel) -> None:
        """Call ``cancel`` on the event loop once every queued message has been polled."""
        self._on_drained = cancel
        self._loop = asyncio.get_running_loop()

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_calls <= self.connect_failures:
            raise BrokerConnectionError("broker unavailable")

    def subscribe(self, topic: str) -> None:
        self.subscribe_calls += 1
        if self.subscribe_calls <= self.subscribe_failures:
            raise BrokerConnectionError("subscription failed")
        self.subscribed.append(topic)

    def poll(self, timeout: float):
        if self.messages:
            return self.messages.pop(0)
        if self._on_drained is not None:
            self._loop.call_soon_threadsafe(self._on_drained)
        return None

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def fake_client_class():
    return FakeBrokerClient
