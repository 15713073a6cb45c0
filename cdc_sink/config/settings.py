"""
Centralized configuration for the CDC event sink.

This module provides:
- Type-safe configuration dataclasses built from environment variables
- Default values for every setting
- Configuration validation

Every setting has a default, so the service starts with no environment at all
against a local broker.
"""

import os
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum

from ..core.errors import ConfigurationError


class Environment(str, Enum):
    """Deployment environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes", "on")


@dataclass
class KafkaConfig:
    """Kafka consumer configuration."""
    brokers: List[str] = field(default_factory=lambda: ["localhost:9092"])
    topic: str = "cdc_events"
    group_id: str = "cdc-consumer-group"
    client_id: str = "cdc-consumer"
    auto_offset_reset: str = "latest"
    enable_auto_commit: bool = True
    session_timeout_ms: int = 30000
    poll_timeout_seconds: float = 1.0

    # Client-level connection retries
    connect_retries: int = 10
    connect_retry_delay_seconds: float = 1.0
    metadata_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> "KafkaConfig":
        """Create Kafka config from environment variables."""
        brokers = [
            broker.strip()
            for broker in os.getenv("KAFKA_BROKERS", "localhost:9092").split(",")
            if broker.strip()
        ]
        return cls(
            brokers=brokers,
            topic=os.getenv("KAFKA_TOPIC", "cdc_events"),
            group_id=os.getenv("KAFKA_GROUP_ID", "cdc-consumer-group"),
            client_id=os.getenv("KAFKA_CLIENT_ID", "cdc-consumer"),
            auto_offset_reset=os.getenv("KAFKA_AUTO_OFFSET_RESET", "latest"),
            enable_auto_commit=_env_bool("KAFKA_ENABLE_AUTO_COMMIT", "true"),
            session_timeout_ms=int(os.getenv("KAFKA_SESSION_TIMEOUT_MS", "30000")),
            poll_timeout_seconds=float(os.getenv("KAFKA_POLL_TIMEOUT", "1.0")),
            connect_retries=int(os.getenv("KAFKA_CONNECT_RETRIES", "10")),
            connect_retry_delay_seconds=float(os.getenv("KAFKA_CONNECT_RETRY_DELAY", "1.0")),
            metadata_timeout_seconds=float(os.getenv("KAFKA_METADATA_TIMEOUT", "10.0")),
        )

    def client_settings(self) -> Dict[str, Any]:
        """librdkafka settings for confluent_kafka.Consumer."""
        return {
            "bootstrap.servers": ",".join(self.brokers),
            "group.id": self.group_id,
            "client.id": self.client_id,
            "auto.offset.reset": self.auto_offset_reset,
            "enable.auto.commit": self.enable_auto_commit,
            "session.timeout.ms": self.session_timeout_ms,
        }


@dataclass
class SupervisorConfig:
    """Outer reconnection policy for the connection supervisor."""
    max_retries: int = 30
    retry_delay_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> "SupervisorConfig":
        """Create supervisor config from environment variables."""
        return cls(
            max_retries=int(os.getenv("SUPERVISOR_MAX_RETRIES", "30")),
            retry_delay_seconds=float(os.getenv("SUPERVISOR_RETRY_DELAY", "5.0")),
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # File logging
    log_to_file: bool = True
    log_file_path: Optional[str] = "/var/log/consumer/cdc-events.log"
    max_file_size: int = 50 * 1024 * 1024  # 50MB
    backup_count: int = 5

    # Structured logging (JSON)
    structured: bool = True

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Create logging config from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format=os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
            date_format=os.getenv("LOG_DATE_FORMAT", "%Y-%m-%d %H:%M:%S"),
            log_to_file=_env_bool("LOG_TO_FILE", "true"),
            log_file_path=os.getenv("LOG_FILE", "/var/log/consumer/cdc-events.log"),
            max_file_size=int(os.getenv("LOG_MAX_FILE_SIZE", str(50 * 1024 * 1024))),
            backup_count=int(os.getenv("LOG_BACKUP_COUNT", "5")),
            structured=_env_bool("LOG_STRUCTURED", "true"),
        )


@dataclass
class MonitoringConfig:
    """Metrics endpoint configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    metrics_port: int = 3000
    collect_system_metrics: bool = True

    @classmethod
    def from_env(cls) -> "MonitoringConfig":
        """Create monitoring config from environment variables."""
        return cls(
            enabled=_env_bool("MONITORING_ENABLED", "true"),
            host=os.getenv("MONITORING_HOST", "0.0.0.0"),
            metrics_port=int(os.getenv("PROMETHEUS_PORT", "3000")),
            collect_system_metrics=_env_bool("COLLECT_SYSTEM_METRICS", "true"),
        )


@dataclass
class AppConfig:
    """Main application configuration."""
    environment: Environment = Environment.DEVELOPMENT

    # Component configs
    kafka: KafkaConfig = field(default_factory=KafkaConfig.from_env)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig.from_env)
    logging: LoggingConfig = field(default_factory=LoggingConfig.from_env)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig.from_env)

    # Application settings
    app_name: str = "cdc-consumer"
    version: str = "1.0.0"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create application config from environment variables."""
        env_str = os.getenv("ENVIRONMENT", "development").lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            environment = Environment.DEVELOPMENT

        return cls(
            environment=environment,
            app_name=os.getenv("APP_NAME", "cdc-consumer"),
            version=os.getenv("APP_VERSION", "1.0.0"),
        )

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.kafka.brokers:
            raise ConfigurationError("At least one Kafka broker must be configured")

        if not self.kafka.topic:
            raise ConfigurationError("Kafka topic must be configured")

        if not self.kafka.group_id:
            raise ConfigurationError("Kafka consumer group id must be configured")

        if self.kafka.connect_retries < 1 or self.supervisor.max_retries < 1:
            raise ConfigurationError("Retry counts must be at least 1")

        if self.kafka.connect_retry_delay_seconds < 0 or self.supervisor.retry_delay_seconds < 0:
            raise ConfigurationError("Retry delays cannot be negative")

        if not 0 < self.monitoring.metrics_port < 65536:
            raise ConfigurationError(f"Invalid metrics port: {self.monitoring.metrics_port}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for logging/serialization."""
        return {
            "environment": self.environment.value,
            "app_name": self.app_name,
            "version": self.version,
            "kafka": {
                "brokers": self.kafka.brokers,
                "topic": self.kafka.topic,
                "group_id": self.kafka.group_id,
                "client_id": self.kafka.client_id,
            },
            "supervisor": {
                "max_retries": self.supervisor.max_retries,
                "retry_delay_seconds": self.supervisor.retry_delay_seconds,
            },
            "prometheus": {
                "port": self.monitoring.metrics_port,
            },
            "logging": {
                "file": self.logging.log_file_path,
                "level": self.logging.level,
            },
        }


# Global configuration instance
config = AppConfig.from_env()
