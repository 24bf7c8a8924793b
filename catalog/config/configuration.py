"""Configuration module for the product catalog.

Loads settings from environment-specific config files:
- APP_ENV=dev  → config_dev.yaml (SQLite backend, local development)
- APP_ENV=test → config_test.yaml (CosmosDB backend, production-like testing)
- Default      → config.yaml

Cosmos DB credentials are loaded from .env file.
Fails fast with clear error messages if required configuration is missing.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

SUPPORTED_BACKENDS = ("sqlite", "cosmosdb")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_project_root() -> Path:
    """Get the project root directory (where config.yaml lives)."""
    # Navigate from catalog/config/ up to project root
    return Path(__file__).parent.parent.parent


def _get_config_filename() -> str:
    """Get config filename based on APP_ENV environment variable.

    Returns:
        Config filename:
        - APP_ENV=dev  → config_dev.yaml
        - APP_ENV=test → config_test.yaml
        - Default      → config.yaml
    """
    app_env = os.environ.get("APP_ENV", "").lower()

    if app_env == "dev":
        return "config_dev.yaml"
    elif app_env == "test":
        return "config_test.yaml"
    else:
        return "config.yaml"


def _load_yaml_config() -> dict:
    """Load configuration from environment-specific config file."""
    config_filename = _get_config_filename()
    config_path = _get_project_root() / config_filename

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}. "
            f"Set APP_ENV to 'dev' or 'test', or create {config_filename}."
        )

    with open(config_path, "r") as f:
        return yaml.safe_load(f) or {}


def _get_required_env(key: str) -> str:
    """Get required environment variable or raise ConfigurationError."""
    value = os.environ.get(key)
    if not value:
        raise ConfigurationError(
            f"Required environment variable '{key}' is not set. "
            f"Please add it to your .env file."
        )
    return value


@dataclass(frozen=True)
class DatabaseConfig:
    """Product store configuration with backend toggle."""
    backend: str  # "sqlite" or "cosmosdb"
    sqlite_path: str


@dataclass(frozen=True)
class CosmosDBConfig:
    """Azure Cosmos DB configuration for the product container."""
    endpoint: str
    key: str
    database_name: str
    container_name: str


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""
    level: str


@dataclass(frozen=True)
class ApiConfig:
    """HTTP API configuration."""
    title: str


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration container."""
    database: DatabaseConfig
    logging: LoggingConfig
    api: ApiConfig
    cosmosdb: Optional[CosmosDBConfig]  # Only required when database.backend == "cosmosdb"


def load_config() -> AppConfig:
    """
    Load and validate all application configuration.

    Loads from the YAML config file for non-sensitive settings and .env for
    credentials. Fails fast if required configuration is missing.

    Returns:
        AppConfig: Validated application configuration.

    Raises:
        ConfigurationError: If required configuration is missing.
    """
    # Load environment variables from .env file
    load_dotenv()

    # Load YAML configuration
    yaml_config = _load_yaml_config()

    # Build Database config
    db_section = yaml_config.get("database", {})
    backend = db_section.get("backend", "sqlite")

    database_config = DatabaseConfig(
        backend=backend,
        sqlite_path=db_section.get("sqlite_path", "products.db"),
    )

    # Build Logging config
    logging_section = yaml_config.get("logging", {})

    logging_config = LoggingConfig(
        level=logging_section.get("level", "INFO"),
    )

    # Build API config
    api_section = yaml_config.get("api", {})

    api_config = ApiConfig(
        title=api_section.get("title", "Product Catalog API"),
    )

    # Build CosmosDB config (only if backend is cosmosdb)
    cosmosdb_config: Optional[CosmosDBConfig] = None
    if backend == "cosmosdb":
        cosmosdb_section = yaml_config.get("cosmosdb", {})
        cosmosdb_config = CosmosDBConfig(
            endpoint=_get_required_env("COSMOSDB_ENDPOINT"),
            key=_get_required_env("COSMOSDB_KEY"),
            database_name=cosmosdb_section.get("database_name", "catalog"),
            container_name=cosmosdb_section.get("container_name", "products"),
        )

    return AppConfig(
        database=database_config,
        logging=logging_config,
        api=api_config,
        cosmosdb=cosmosdb_config,
    )


# Module-level singleton for convenience
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """
    Get the application configuration singleton.

    Lazy-loads configuration on first access.
    Config file is selected based on APP_ENV environment variable.

    Returns:
        AppConfig: Application configuration.

    Raises:
        ConfigurationError: If required configuration is missing.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def get_environment() -> str:
    """Get current environment name.

    Returns:
        'dev', 'test', or 'default' based on APP_ENV.
    """
    app_env = os.environ.get("APP_ENV", "").lower()
    return app_env if app_env in ("dev", "test") else "default"


def reset_config() -> None:
    """Reset the config singleton. Useful for testing."""
    global _config
    _config = None
