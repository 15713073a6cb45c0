"""
Configuration package for the CDC event sink.

This package provides centralized configuration management with:
- Environment variable support
- Configuration file loading (YAML/JSON)
- Type-safe configuration classes
- Validation
"""

from .settings import (
    AppConfig,
    KafkaConfig,
    SupervisorConfig,
    LoggingConfig,
    MonitoringConfig,
    Environment,
    config as app_config
)

from .loader import (
    ConfigLoader,
    load_configuration,
    DEFAULT_CONFIG_YAML,
)

__all__ = [
    # Main configuration classes
    "AppConfig",
    "KafkaConfig",
    "SupervisorConfig",
    "LoggingConfig",
    "MonitoringConfig",
    "Environment",

    # Global config instance
    "app_config",

    # Loading utilities
    "ConfigLoader",
    "load_configuration",
    "DEFAULT_CONFIG_YAML",
]
