"""
Per-event instrumentation.

Records the processing histogram, the event counter and the structured
event log for each non-skipped CDC event.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..core.errors import ProcessingError
from ..core.logging import EventLogger
from .metrics import MetricsRegistry

if TYPE_CHECKING:
    from ..consumer.classifier import OperationCategory
    from ..consumer.decoder import NormalizedEvent

logger = logging.getLogger(__name__)


class Instrumentation:
    """Records metrics and the structured log entry for processed events."""

    def __init__(self, metrics: MetricsRegistry, event_logger: Optional[EventLogger] = None):
        self.metrics = metrics
        self.event_logger = event_logger or EventLogger()

    def record(self, event: "NormalizedEvent", category: "OperationCategory") -> bool:
        """
        Record one processed event.

        The elapsed time of the whole call is observed under
        ``(table, category)`` even when a later step fails. The counter is
        incremented before the event is logged.

        Args:
            event: NormalizedEvent from the decoder
            category: OperationCategory from the classifier

        Returns:
            True if every step succeeded, False if recording failed
        """
        with self.metrics.time_event(event.table, category.value):
            try:
                self.metrics.record_event(event.table, category.value)
                self.event_logger.log_processed(event, category)
                return True
            except Exception as e:
                error = ProcessingError(event.table, category.value, e)
                logger.error(
                    "Error processing CDC event",
                    extra={"error": str(error), "error_type": type(e).__name__},
                )
                return False
