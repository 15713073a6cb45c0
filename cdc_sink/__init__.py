"""
CDC event sink.

Consumes database change events from Kafka, classifies them and records
per-table operation metrics and structured event logs.
"""

__version__ = "1.0.0"
