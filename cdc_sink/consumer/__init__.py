"""
Consumer package for the CDC event sink.

This package provides:
- Canal JSON decoding into normalized CDC events
- Operation classification and DDL skipping
- The Kafka broker client with connection retries
- The per-message consume loop
- The connection supervisor with reconnect and graceful shutdown
"""

from .decoder import (
    FIELD_DEFAULTS,
    NormalizedEvent,
    EventDecoder,
    decode_event,
)

from .classifier import (
    OperationCategory,
    ClassifiedOutcome,
    EventClassifier,
    classify_event,
)

from .retry import (
    RetryPolicy,
    call_with_retry,
)

from .client import (
    RawMessage,
    KafkaBrokerClient,
)

from .consumer import (
    ShutdownToken,
    ConsumeStats,
    ConsumeLoop,
)

from .supervisor import (
    SupervisorState,
    ConnectionSupervisor,
)

__all__ = [
    # Decoding
    "FIELD_DEFAULTS",
    "NormalizedEvent",
    "EventDecoder",
    "decode_event",

    # Classification
    "OperationCategory",
    "ClassifiedOutcome",
    "EventClassifier",
    "classify_event",

    # Retry
    "RetryPolicy",
    "call_with_retry",

    # Broker client
    "RawMessage",
    "KafkaBrokerClient",

    # Consume loop
    "ShutdownToken",
    "ConsumeStats",
    "ConsumeLoop",

    # Supervision
    "SupervisorState",
    "ConnectionSupervisor",
]
