"""Configuration module."""

from catalog.config.configuration import (
    SUPPORTED_BACKENDS,
    ApiConfig,
    AppConfig,
    ConfigurationError,
    CosmosDBConfig,
    DatabaseConfig,
    LoggingConfig,
    get_config,
    get_environment,
    load_config,
    reset_config,
)

__all__ = [
    "SUPPORTED_BACKENDS",
    "ApiConfig",
    "AppConfig",
    "ConfigurationError",
    "CosmosDBConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "get_config",
    "get_environment",
    "load_config",
    "reset_config",
]
