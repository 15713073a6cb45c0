"""
Logging configuration for the CDC event sink.

This module provides:
- Structured logging with JSON output
- Console and rotating file handlers
- The structured event sink used to record processed CDC events
"""

import os
import sys
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Any, Dict
from pathlib import Path
from pythonjsonlogger import jsonlogger

from ..config import LoggingConfig, Environment


APP_NAME = 'cdc-consumer'


class StructuredFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every record with service metadata."""

    def __init__(self, *args, app_name: str = APP_NAME, environment: str = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.app_name = app_name
        self.environment = environment or os.getenv('ENVIRONMENT', 'development')

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['timestamp'] = datetime.now(timezone.utc).isoformat()
        log_record['level'] = record.levelname
        log_record['app_name'] = self.app_name
        log_record['environment'] = self.environment


def setup_logging(
    config: LoggingConfig,
    environment: Environment,
    app_name: str = APP_NAME,
) -> None:
    """
    Set up logging configuration.

    Args:
        config: Logging configuration
        environment: Deployment environment
        app_name: Value for the app_name field on structured records
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level))

    if config.structured:
        formatter = StructuredFormatter(
            fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
            app_name=app_name,
            environment=environment.value,
        )
    else:
        formatter = logging.Formatter(
            fmt=config.format,
            datefmt=config.date_format
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, config.level))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.log_to_file and config.log_file_path:
        log_path = Path(config.log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            filename=str(log_path),
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(getattr(logging, config.level))
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if environment == Environment.PRODUCTION:
        # Reduce noise from third-party libraries
        logging.getLogger('confluent_kafka').setLevel(logging.WARNING)
        logging.getLogger('aiohttp.access').setLevel(logging.WARNING)


class EventLogger:
    """Structured event sink for CDC events."""

    def __init__(self, logger_name: str = 'cdc_sink.events'):
        self.logger = logging.getLogger(logger_name)

    def log_processed(self, event, category) -> None:
        """Log a processed CDC event with its full row payloads."""
        extra: Dict[str, Any] = {
            'event_type': 'cdc_event',
            'database': event.database,
            'table_name': event.table,
            'operation': category.value,
            'is_ddl': event.is_schema_change,
            'event_timestamp': event.event_timestamp,
            'data_count': len(event.rows_after),
            'data': event.rows_after,
            'old': event.rows_before,
        }
        self.logger.info("CDC Event Processed", extra=extra)

    def log_skipped(self, event) -> None:
        """Log a schema change event that is not counted."""
        self.logger.info(
            "Skipping DDL event",
            extra={
                'event_type': 'cdc_ddl_skipped',
                'database': event.database,
                'table_name': event.table,
            }
        )


# Global event sink
event_logger = EventLogger()
