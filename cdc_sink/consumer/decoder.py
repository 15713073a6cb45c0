"""
CDC event decoder.

This module provides:
- Canal JSON message parsing
- Field-level defaulting into a NormalizedEvent
- DecodeError for malformed payloads

The decoder is a pure function of its input and holds no state, so a single
instance can be shared by any number of consumers.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from json import JSONDecodeError
from typing import Any, Callable, Dict, List, Union

from ..core.errors import DecodeError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


# Wire field -> (event attribute, default factory). Applied when the wire
# value is missing or falsy. A None factory means the decoder clock.
FIELD_DEFAULTS: Dict[str, tuple] = {
    "database": ("database", lambda: "unknown"),
    "table": ("table", lambda: "unknown"),
    "type": ("operation", lambda: "unknown"),
    "isDdl": ("is_schema_change", lambda: False),
    "ts": ("event_timestamp", None),
    "data": ("rows_after", list),
    "old": ("rows_before", list),
}


@dataclass(frozen=True)
class NormalizedEvent:
    """A decoded CDC record with defaults applied."""
    database: str
    table: str
    operation: str
    is_schema_change: bool
    event_timestamp: int
    rows_after: List[Any] = field(default_factory=list)
    rows_before: List[Any] = field(default_factory=list)

    # Decoded structure, kept for debugging
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)


class EventDecoder:
    """
    Decoder for Canal JSON CDC messages.

    A message looks like::

        {"database": "app_db", "table": "users", "type": "INSERT",
         "isDdl": false, "ts": 1700000000000,
         "data": [{"id": 1}], "old": []}

    Other Canal fields (``pkNames``, ``es``, ``sql``...) are tolerated and
    kept in ``NormalizedEvent.raw``.
    """

    def __init__(self, clock: Callable[[], int] = _now_ms):
        self.clock = clock

    def decode(self, payload: Union[bytes, str]) -> NormalizedEvent:
        """
        Decode a raw message payload.

        Args:
            payload: Message value as bytes or text

        Returns:
            NormalizedEvent with defaults applied

        Raises:
            DecodeError: If the payload is not a JSON object
        """
        try:
            text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
            document = json.loads(text)
        except (UnicodeDecodeError, JSONDecodeError, TypeError) as e:
            raise DecodeError(payload, e) from e

        if not isinstance(document, dict):
            cause = ValueError(f"expected a JSON object, got {type(document).__name__}")
            raise DecodeError(payload, cause) from cause

        return self.normalize(document)

    def normalize(self, document: Dict[str, Any]) -> NormalizedEvent:
        """Build a NormalizedEvent from a decoded Canal document."""
        values = {}
        for wire_name, (attribute, default) in FIELD_DEFAULTS.items():
            value = document.get(wire_name)
            if not value:
                value = default() if default is not None else self.clock()
            values[attribute] = value

        return NormalizedEvent(
            database=str(values["database"]),
            table=str(values["table"]),
            operation=str(values["operation"]).lower(),
            is_schema_change=bool(values["is_schema_change"]),
            event_timestamp=self._coerce_timestamp(values["event_timestamp"]),
            rows_after=self._coerce_rows(values["rows_after"]),
            rows_before=self._coerce_rows(values["rows_before"]),
            raw=document,
        )

    def _coerce_timestamp(self, ts: Any) -> int:
        """Millisecond timestamp as int, current time if unusable."""
        try:
            return int(ts)
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Invalid event timestamp {ts!r}, using current time")
            return self.clock()

    def _coerce_rows(self, rows: Any) -> List[Any]:
        if isinstance(rows, list):
            return rows
        # A single row object is treated as a one-row batch
        return [rows]


# Global decoder instance
default_decoder = EventDecoder()


def decode_event(payload: Union[bytes, str]) -> NormalizedEvent:
    """Convenience function to decode a payload with the default decoder."""
    return default_decoder.decode(payload)
