"""
Configuration loader utilities.

Provides functions to load configuration from various sources:
- Configuration files (YAML/JSON)
- Environment variables (take precedence over files)
- Default values (fallback)
"""

import os
import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Dict, Any, Optional

import yaml

from ..core.errors import ConfigurationError
from .settings import (
    AppConfig,
    Environment,
    KafkaConfig,
    LoggingConfig,
    MonitoringConfig,
    SupervisorConfig,
)

logger = logging.getLogger(__name__)


# Environment variable -> dotted config path
ENV_MAPPINGS = {
    'ENVIRONMENT': 'environment',
    'APP_NAME': 'app_name',
    'APP_VERSION': 'version',
    # Kafka settings
    'KAFKA_BROKERS': 'kafka.brokers',
    'KAFKA_TOPIC': 'kafka.topic',
    'KAFKA_GROUP_ID': 'kafka.group_id',
    'KAFKA_CLIENT_ID': 'kafka.client_id',
    'KAFKA_AUTO_OFFSET_RESET': 'kafka.auto_offset_reset',
    'KAFKA_ENABLE_AUTO_COMMIT': 'kafka.enable_auto_commit',
    'KAFKA_SESSION_TIMEOUT_MS': 'kafka.session_timeout_ms',
    'KAFKA_POLL_TIMEOUT': 'kafka.poll_timeout_seconds',
    'KAFKA_CONNECT_RETRIES': 'kafka.connect_retries',
    'KAFKA_CONNECT_RETRY_DELAY': 'kafka.connect_retry_delay_seconds',
    'KAFKA_METADATA_TIMEOUT': 'kafka.metadata_timeout_seconds',
    # Supervisor settings
    'SUPERVISOR_MAX_RETRIES': 'supervisor.max_retries',
    'SUPERVISOR_RETRY_DELAY': 'supervisor.retry_delay_seconds',
    # Logging settings
    'LOG_LEVEL': 'logging.level',
    'LOG_FORMAT': 'logging.format',
    'LOG_DATE_FORMAT': 'logging.date_format',
    'LOG_TO_FILE': 'logging.log_to_file',
    'LOG_FILE': 'logging.log_file_path',
    'LOG_MAX_FILE_SIZE': 'logging.max_file_size',
    'LOG_BACKUP_COUNT': 'logging.backup_count',
    'LOG_STRUCTURED': 'logging.structured',
    # Monitoring settings
    'MONITORING_ENABLED': 'monitoring.enabled',
    'MONITORING_HOST': 'monitoring.host',
    'PROMETHEUS_PORT': 'monitoring.metrics_port',
    'COLLECT_SYSTEM_METRICS': 'monitoring.collect_system_metrics',
}

INT_FIELDS = {
    'session_timeout_ms', 'connect_retries', 'max_retries', 'max_file_size',
    'backup_count', 'metrics_port',
}
FLOAT_FIELDS = {
    'poll_timeout_seconds', 'connect_retry_delay_seconds', 'metadata_timeout_seconds',
    'retry_delay_seconds',
}
BOOL_FIELDS = {
    'enable_auto_commit', 'log_to_file', 'structured', 'enabled', 'collect_system_metrics',
}

SECTIONS = {
    'kafka': KafkaConfig,
    'supervisor': SupervisorConfig,
    'logging': LoggingConfig,
    'monitoring': MonitoringConfig,
}


class ConfigLoader:
    """Configuration loader with support for multiple sources."""

    def __init__(self):
        self.config_paths = [
            Path.cwd() / "config" / "cdc-sink.yaml",
            Path.cwd() / "config" / "cdc-sink.json",
            Path.home() / ".cdc_sink" / "config.yaml",
            Path.home() / ".cdc_sink" / "config.json",
        ]

    def load_from_file(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        Load configuration from file.

        Args:
            config_path: Specific config file path, or None to try defaults

        Returns:
            Configuration dictionary from file, or empty dict if not found

        Raises:
            ConfigurationError: If an explicitly requested file is missing or unreadable
        """
        if config_path is not None:
            config_path = Path(config_path)
            if not config_path.exists():
                raise ConfigurationError(f"Config file not found: {config_path}")
            return self._read(config_path)

        for path in self.config_paths:
            if path.exists():
                try:
                    return self._read(path)
                except ConfigurationError as e:
                    logger.warning(f"Failed to load config from {path}: {e}")
                    continue

        return {}

    def _read(self, path: Path) -> Dict[str, Any]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    data = json.load(f) or {}
                else:
                    raise ConfigurationError(f"Unsupported config file type: {path.suffix}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return data

    def merge_configs(self, file_config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge file configuration with environment variables.

        Environment variables take precedence over file config.
        """
        merged = {
            key: dict(value) if isinstance(value, dict) else value
            for key, value in file_config.items()
        }

        for env_var, config_path in ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                self._set_nested_value(merged, config_path, env_value)

        return merged

    def _set_nested_value(self, config: Dict[str, Any], path: str, value: Any) -> None:
        """Set a value in a nested dictionary using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _coerce(self, key: str, value: Any) -> Any:
        """Convert raw file/env values to the type of the target field."""
        try:
            if key in INT_FIELDS:
                return int(value)
            if key in FLOAT_FIELDS:
                return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value for {key}: {value!r}") from e

        if key in BOOL_FIELDS:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ('true', '1', 'yes', 'on')
        if key == 'brokers':
            if isinstance(value, str):
                return [s.strip() for s in value.split(',') if s.strip()]
            return [str(s) for s in value]
        if key == 'level':
            return str(value).upper()
        return value

    def build_config(self, merged: Dict[str, Any]) -> AppConfig:
        """Map a merged nested dictionary onto AppConfig dataclasses."""
        sections = {}
        for name, section_cls in SECTIONS.items():
            raw = merged.get(name) or {}
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Config section '{name}' must be a mapping")
            known = {f.name for f in fields(section_cls)}
            unknown = set(raw) - known
            if unknown:
                logger.warning(f"Ignoring unknown {name} settings: {sorted(unknown)}")
            sections[name] = section_cls(**{
                key: self._coerce(key, value)
                for key, value in raw.items()
                if key in known
            })

        env_str = str(merged.get('environment', 'development')).lower()
        try:
            environment = Environment(env_str)
        except ValueError:
            environment = Environment.DEVELOPMENT

        return AppConfig(
            environment=environment,
            app_name=merged.get('app_name', 'cdc-consumer'),
            version=str(merged.get('version', '1.0.0')),
            **sections,
        )

    def load_config(self, config_path: Optional[Path] = None) -> AppConfig:
        """
        Load and create AppConfig from available sources.

        Args:
            config_path: Optional specific config file path

        Returns:
            Validated AppConfig instance
        """
        file_config = self.load_from_file(config_path)
        merged_config = self.merge_configs(file_config)
        config = self.build_config(merged_config)
        config.validate()
        return config


def load_configuration(config_path: Optional[Path] = None) -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Configured AppConfig instance
    """
    loader = ConfigLoader()
    return loader.load_config(config_path)


# Example configuration file template
DEFAULT_CONFIG_YAML = """
environment: development

kafka:
  brokers:
    - localhost:9092
  topic: cdc_events
  group_id: cdc-consumer-group
  connect_retries: 10
  connect_retry_delay_seconds: 1.0

supervisor:
  max_retries: 30
  retry_delay_seconds: 5.0

logging:
  level: INFO
  structured: true
  log_file_path: /var/log/consumer/cdc-events.log

monitoring:
  enabled: true
  metrics_port: 3000
"""
