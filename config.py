"""
Configuration Module
====================
Centralized environment variable loading, validation, and access.
Validates all required configuration at startup to fail fast.

NO BUSINESS LOGIC - Pure configuration management only.
"""

import os
import logging
from typing import Optional, Dict, Any
from pathlib import Path

import structlog
from dotenv import load_dotenv


# ============================================================================
# LOGGING
# ============================================================================

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# ============================================================================
# ENVIRONMENT LOADING
# ============================================================================

def load_environment():
    """
    Load environment variables from .env file if present.
    Safe to call multiple times.
    """
    env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment from .env file")
    else:
        logger.info("No .env file found, using system environment variables")


# Load on module import
load_environment()


# ============================================================================
# CONFIGURATION EXCEPTION
# ============================================================================

class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


# ============================================================================
# VALIDATION HELPERS
# ============================================================================

def _get_required_env(key: str, description: str = None) -> str:
    """
    Get required environment variable.

    Args:
        key: Environment variable name
        description: Optional description for error message

    Returns:
        Environment variable value

    Raises:
        ConfigurationError: If variable is missing or empty
    """
    value = os.getenv(key)

    if not value or value.strip() == "":
        desc = f" ({description})" if description else ""
        raise ConfigurationError(
            f"Missing required environment variable: {key}{desc}"
        )

    return value.strip()


def _get_optional_env(key: str, default: str = None) -> Optional[str]:
    """Get optional environment variable."""
    value = os.getenv(key, default)
    return value.strip() if value else default


def _get_bool_env(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on", "enabled")


def _get_int_env(key: str, default: int = None) -> Optional[int]:
    """
    Get integer environment variable.

    Raises:
        ConfigurationError: If value is not a valid integer
    """
    value = os.getenv(key)

    if not value:
        return default

    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid integer value for {key}: {value}"
        )


def _get_float_env(key: str, default: float = None) -> Optional[float]:
    """
    Get float environment variable.

    Raises:
        ConfigurationError: If value is not a valid number
    """
    value = os.getenv(key)

    if not value:
        return default

    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(
            f"Invalid numeric value for {key}: {value}"
        )


# ============================================================================
# STORE CONFIGURATION
# ============================================================================

class StoreConfig:
    """Catalog/order store selection and resilience settings."""

    def __init__(self):
        self.backend = _get_optional_env("STORE_BACKEND", "memory").lower()

        if self.backend not in ["memory", "supabase"]:
            raise ConfigurationError(
                f"Invalid STORE_BACKEND: {self.backend}. "
                f"Must be 'memory' or 'supabase'"
            )

        self.read_timeout = _get_float_env("STORE_READ_TIMEOUT", 5.0)
        self.write_timeout = _get_float_env("STORE_WRITE_TIMEOUT", 10.0)
        self.breaker_threshold = _get_int_env("CIRCUIT_BREAKER_THRESHOLD", 5)
        self.breaker_timeout = _get_int_env("CIRCUIT_BREAKER_TIMEOUT", 30)

        if self.read_timeout <= 0 or self.write_timeout <= 0:
            raise ConfigurationError("Store timeouts must be positive")

        if self.breaker_threshold < 1:
            raise ConfigurationError(
                f"CIRCUIT_BREAKER_THRESHOLD must be >= 1: {self.breaker_threshold}"
            )


# ============================================================================
# SUPABASE CONFIGURATION
# ============================================================================

class SupabaseConfig:
    """Supabase database configuration."""

    def __init__(self):
        self.url = _get_required_env(
            "SUPABASE_URL",
            "Supabase project URL"
        )

        self.key = _get_required_env(
            "SUPABASE_KEY",
            "Supabase anon or service role key"
        )

        # Validate URL format
        if not self.url.startswith("https://"):
            raise ConfigurationError(
                f"SUPABASE_URL must start with https://: {self.url}"
            )


# ============================================================================
# LOGGING CONFIGURATION
# ============================================================================

class LoggingConfig:
    """Log level and output format."""

    def __init__(self):
        self.log_level = _get_optional_env("LOG_LEVEL", "INFO").upper()

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ConfigurationError(
                f"Invalid LOG_LEVEL: {self.log_level}"
            )

        self.json_logs = _get_bool_env("LOG_JSON", False)


# ============================================================================
# MAIN CONFIGURATION CLASS
# ============================================================================

class Config:
    """
    Main configuration container.
    Loads and validates all configuration on initialization.
    """

    def __init__(self):
        """
        Initialize and validate all configuration.

        Raises:
            ConfigurationError: If any required configuration is missing or invalid
        """
        try:
            self.store = StoreConfig()
            # Supabase credentials only matter for the supabase backend
            self.supabase = (
                SupabaseConfig() if self.store.backend == "supabase" else None
            )
            self.logging = LoggingConfig()

            logger.info("Configuration loaded and validated successfully")

        except ConfigurationError as e:
            logger.error(f"Configuration error: {str(e)}")
            raise
        except Exception as e:
            logger.error(f"Unexpected error loading configuration: {str(e)}")
            raise ConfigurationError(f"Configuration initialization failed: {str(e)}")

    def get_safe_summary(self) -> Dict[str, Any]:
        """
        Get safe configuration summary (no secrets).

        Returns:
            Dictionary with non-sensitive configuration
        """
        return {
            "store": {
                "backend": self.store.backend,
                "read_timeout": self.store.read_timeout,
                "write_timeout": self.store.write_timeout,
                "breaker_threshold": self.store.breaker_threshold,
            },
            "supabase_url": self.supabase.url if self.supabase else None,
            "log_level": self.logging.log_level,
            "json_logs": self.logging.json_logs,
        }


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get global configuration instance.
    Initializes on first call.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config

    if _config is None:
        _config = Config()

    return _config


def reload_config() -> Config:
    """
    Reload configuration from environment.
    Useful for testing or dynamic reconfiguration.
    """
    global _config
    load_environment()
    _config = Config()
    logger.info("Configuration reloaded")
    return _config


# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging(level: str = None, json_logs: bool = None):
    """
    Configure stdlib logging and structlog with one shared level.

    Args:
        level: Log level name (defaults to LOG_LEVEL)
        json_logs: Render structlog events as JSON (defaults to LOG_JSON)
    """
    if level is None or json_logs is None:
        settings = get_config().logging
        level = level or settings.log_level
        json_logs = settings.json_logs if json_logs is None else json_logs

    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level)
        ),
    )


# ============================================================================
# VALIDATION FUNCTION
# ============================================================================

def validate_configuration():
    """
    Validate configuration and log summary.
    Useful for startup checks.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    summary = get_config().get_safe_summary()

    logger.info("Configuration Summary:")
    logger.info(f"  Store backend: {summary['store']['backend']}")
    logger.info(f"  Read timeout: {summary['store']['read_timeout']}s")
    logger.info(f"  Log Level: {summary['log_level']}")

    if summary["supabase_url"]:
        logger.info(f"  Supabase URL: {summary['supabase_url'][:30]}...")

    logger.info("Configuration validation complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    try:
        validate_configuration()
        print("\n✓ Configuration is valid!")
    except ConfigurationError as e:
        print(f"\n✗ Configuration Error: {e}")
        raise SystemExit(1)
