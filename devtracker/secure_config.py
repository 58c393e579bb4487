"""
Secure Configuration Management

Provides centralized, validated configuration for the tracker core.
Replaces scattered os.getenv() calls with strict validation and fail-fast behavior.

Usage:
    from devtracker.secure_config import get_config

    config = get_config()
    gitlab_config = config.get_gitlab_config()
    print(gitlab_config.base_url)

Security Features:
    - Strict validation of all configuration values
    - Fail-fast on missing/invalid configuration
    - ENCRYPTION_KEY mandatory in production, development default only outside it
    - Placeholder detection for the encryption secret
    - Secrets never included in error messages

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import os
import re
from dataclasses import dataclass

from dotenv import load_dotenv

from devtracker.core.logging_config import get_logger, setup_logging
from devtracker.errors import ConfigurationError

logger = get_logger(__name__)

DEV_ENCRYPTION_KEY = "default-secret-change-in-production-env-not-secure"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GitLabConfig:
    """
    Validated GitLab configuration.
    """

    base_url: str
    project_id: int | None = None
    project_path: str | None = None
    per_page: int = 100

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self):
        """
        Validate GitLab configuration.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if not self.base_url:
            raise ConfigurationError("GITLAB_BASE_URL is required")

        if not re.match(r"^https?://[^\s/]+", self.base_url):
            raise ConfigurationError(f"GITLAB_BASE_URL must be an http(s) URL: {self.base_url}")

        self.base_url = self.base_url.rstrip("/")

        if self.project_id is not None and self.project_id <= 0:
            raise ConfigurationError(f"GITLAB_PROJECT_ID must be positive: {self.project_id}")

        if not 1 <= self.per_page <= 100:
            raise ConfigurationError(f"GITLAB_PER_PAGE must be between 1 and 100: {self.per_page}")


@dataclass
class EncryptionConfig:
    """
    Validated token encryption configuration.
    """

    secret: str
    environment: str = "development"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def _validate(self):
        """
        Validate encryption configuration.

        Raises:
            ConfigurationError: If the secret is missing in production or is a placeholder
        """
        if not self.secret:
            if self.is_production:
                raise ConfigurationError("ENCRYPTION_KEY environment variable is not set in production environment")
            logger.warning("Using default encryption key. This is not secure for production!")
            self.secret = DEV_ENCRYPTION_KEY
            return

        placeholders = ["your_key", "your_secret", "placeholder", "replace_me", "changeme"]
        if self.is_production and any(p in self.secret.lower() for p in placeholders):
            raise ConfigurationError("ENCRYPTION_KEY contains a placeholder value - please set a real secret")


@dataclass
class RetryConfig:
    """
    Validated retry/backoff configuration for upstream page fetches.
    """

    max_attempts: int = 4
    backoff_base: float = 0.5
    max_backoff: float = 60.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not 1 <= self.max_attempts <= 10:
            raise ConfigurationError(f"TRACKER_MAX_RETRIES must be between 1 and 10: {self.max_attempts}")
        if self.backoff_base < 0:
            raise ConfigurationError(f"TRACKER_BACKOFF_BASE must not be negative: {self.backoff_base}")
        if self.max_backoff < self.backoff_base:
            raise ConfigurationError("TRACKER_MAX_BACKOFF must be >= TRACKER_BACKOFF_BASE")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    json_output: bool = False

    def __post_init__(self):
        if self.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"LOG_LEVEL is not a valid level: {self.level}")
        self.level = self.level.upper()


class SecureConfig:
    """
    Centralized secure configuration manager.

    Loads and validates all application configuration from environment variables.
    Provides fail-fast behavior to catch configuration issues early.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_gitlab_config(self) -> GitLabConfig:
        """
        Get validated GitLab configuration.

        Returns:
            GitLabConfig: Validated configuration

        Raises:
            ConfigurationError: If configuration is missing or invalid
        """
        project_id = os.getenv("GITLAB_PROJECT_ID")
        try:
            parsed_project_id = int(project_id) if project_id else None
        except ValueError as e:
            raise ConfigurationError(f"GITLAB_PROJECT_ID must be an integer, got {project_id!r}") from e

        return GitLabConfig(
            base_url=os.getenv("GITLAB_BASE_URL") or "",
            project_id=parsed_project_id,
            project_path=os.getenv("GITLAB_PROJECT_PATH") or None,
            per_page=_env_int("GITLAB_PER_PAGE", 100),
        )

    def get_encryption_config(self) -> EncryptionConfig:
        """
        Get validated encryption configuration.

        Raises:
            ConfigurationError: If ENCRYPTION_KEY is missing in production
        """
        return EncryptionConfig(
            secret=os.getenv("ENCRYPTION_KEY") or "",
            environment=os.getenv("TRACKER_ENV", "development"),
        )

    def get_retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=_env_int("TRACKER_MAX_RETRIES", 4),
            backoff_base=_env_float("TRACKER_BACKOFF_BASE", 0.5),
            max_backoff=_env_float("TRACKER_MAX_BACKOFF", 60.0),
        )

    def get_logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            level=os.getenv("LOG_LEVEL", "INFO"),
            json_output=_env_bool("LOG_JSON"),
        )


# Convenience function for getting configuration
_config_instance: SecureConfig | None = None


def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance


def reset_config() -> None:
    """Drop the cached configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None


def validate_config_on_startup(required_services: list[str]) -> None:
    """
    Validate required configuration at application startup.

    Args:
        required_services: Services to validate (e.g., ['gitlab', 'encryption'])

    Raises:
        ConfigurationError: If any required configuration is missing or invalid
        ValueError: If an unknown service name is given

    Example:
        validate_config_on_startup(["gitlab", "encryption", "retry"])
    """
    config = get_config()

    for service in required_services:
        if service == "gitlab":
            config.get_gitlab_config()
        elif service == "encryption":
            config.get_encryption_config()
        elif service == "retry":
            config.get_retry_config()
        elif service == "logging":
            logging_config = config.get_logging_config()
            setup_logging(level=logging_config.level, json_output=logging_config.json_output)
        else:
            raise ValueError(f"Unknown service: {service}")
