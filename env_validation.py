"""Environment variable validation and management."""

import logging
import os
from typing import Dict

from languages import LANGUAGES

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class EnvironmentError(Exception):
    """Raised when required environment variables are missing or invalid."""
    pass


def validate_environment() -> None:
    """Validate configuration environment variables.

    Raises EnvironmentError if validation fails.
    """
    defaults = {
        "DISPLAY_LANGUAGE": os.getenv("DISPLAY_LANGUAGE") or LANGUAGES.default_language,
        "LOG_LEVEL": os.getenv("LOG_LEVEL") or "INFO",
    }

    # Apply defaults before validation so dependent modules see consistent values.
    for var, value in defaults.items():
        if not os.getenv(var):
            os.environ[var] = value
            logger.info("Environment variable %s not set; using default '%s'", var, value)

    display_language = os.environ["DISPLAY_LANGUAGE"].strip().lower()
    if not LANGUAGES.is_supported(display_language):
        supported = ", ".join(LANGUAGES.codes())
        raise EnvironmentError(
            f"DISPLAY_LANGUAGE must be one of: {supported} (got '{display_language}')"
        )

    log_level = os.environ["LOG_LEVEL"].strip().upper()
    if log_level not in _LOG_LEVELS:
        raise EnvironmentError(f"Invalid LOG_LEVEL: {log_level}")

    config_path = os.getenv("LANGUAGES_CONFIG")
    if config_path and not os.path.exists(config_path):
        raise EnvironmentError(f"LANGUAGES_CONFIG points to a missing file: {config_path}")

    optional_vars: Dict[str, str] = {
        "LANGUAGES_CONFIG": "Alternate supported-languages file (JSON or YAML)",
    }
    for var, description in optional_vars.items():
        if not os.getenv(var):
            logger.debug("Optional environment variable not set: %s (%s)", var, description)


def display_language() -> str:
    """Return the configured display language, defaulting to the registry default."""
    value = (os.getenv("DISPLAY_LANGUAGE") or "").strip().lower()
    return value if LANGUAGES.is_supported(value) else LANGUAGES.default_language


def configure_logging() -> None:
    """Apply LOG_LEVEL to the root logger."""
    level = (os.getenv("LOG_LEVEL") or "INFO").strip().upper()
    logging.basicConfig(
        level=level if level in _LOG_LEVELS else "INFO",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_env_bool(name: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on", "enabled"}
