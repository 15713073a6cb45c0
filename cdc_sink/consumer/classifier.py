"""
CDC event classifier.

Maps the decoder's lower-cased operation text onto a fixed set of categories
and flags schema change events to be skipped.
"""

from dataclasses import dataclass
from enum import Enum

from .decoder import NormalizedEvent


class OperationCategory(str, Enum):
    """Operation categories used as the ``operation`` metric label."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ClassifiedOutcome:
    """Classification result for one event."""
    category: OperationCategory
    skip: bool


class EventClassifier:
    """Pure, deterministic event classifier."""

    KNOWN_OPERATIONS = {
        "insert": OperationCategory.INSERT,
        "update": OperationCategory.UPDATE,
        "delete": OperationCategory.DELETE,
    }

    def classify(self, event: NormalizedEvent) -> ClassifiedOutcome:
        """Classify an event; schema changes are always skipped."""
        category = self.KNOWN_OPERATIONS.get(event.operation, OperationCategory.UNKNOWN)
        return ClassifiedOutcome(category=category, skip=event.is_schema_change)


default_classifier = EventClassifier()


def classify_event(event: NormalizedEvent) -> ClassifiedOutcome:
    """Convenience function to classify with the default classifier."""
    return default_classifier.classify(event)
