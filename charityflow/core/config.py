"""Configuration management for CharityFlow.

Loads configuration from environment variables and .env file.
Provides validation and sensible defaults.

Usage:
    from charityflow.core.config import get_config, validate_config

    config = get_config()
    issues = validate_config(config)
    if issues:
        for issue in issues:
            logger.warning(f"Config issue: {issue}")
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from charityflow.core.exceptions import ConfigurationError

DEFAULT_ORGANIZATION_NAME = "CCOS Charity Guild"
DEFAULT_STAFF_EMAIL = "events@ccoscharityguild.org"
DEFAULT_APP_URL = "http://localhost:3000"
DEFAULT_TAX_ID = "12-3456789"
DEFAULT_LOG_PATH = Path.home() / ".charityflow" / "logs"


@dataclass
class Config:
    """Application configuration.

    Attributes:
        organization_name: Name merged into every template as organization_name
        staff_email: Recipient for staff notifications and capacity alerts
        app_url: Base URL of the member portal, used for links in emails
        tax_id: Tax id printed on receipts
        log_path: Directory for log files
        newsletter_hour: Hour of day newsletters are delivered
        call_timeout: Timeout in seconds for every external call
        retry_attempts: Retries for member-record side effects
        retry_base_delay: First backoff delay in seconds between retries
        n8n_webhook_url: Base URL of the external automation webhooks (optional)
        n8n_api_key: API key sent with webhook calls (optional)
        disabled_automations: Automation types the dispatcher must skip
        debug: Enable debug mode
        dry_run: Log but don't deliver messages
    """

    organization_name: str = DEFAULT_ORGANIZATION_NAME
    staff_email: str = DEFAULT_STAFF_EMAIL
    app_url: str = DEFAULT_APP_URL
    tax_id: str = DEFAULT_TAX_ID
    log_path: Path = field(default_factory=lambda: DEFAULT_LOG_PATH)

    newsletter_hour: int = 10
    call_timeout: float = 10.0
    retry_attempts: int = 2
    retry_base_delay: float = 1.0

    n8n_webhook_url: Optional[str] = None
    n8n_api_key: Optional[str] = None

    disabled_automations: frozenset[str] = field(default_factory=frozenset)

    debug: bool = False
    dry_run: bool = False


def load_env_file(path: Path) -> dict[str, str]:
    """Parse .env file.

    Handles:
        - KEY=VALUE format
        - Comments (lines starting with #)
        - Blank lines
        - Quoted values

    Args:
        path: Path to .env file

    Returns:
        Dictionary of environment variables
    """
    env_vars: dict[str, str] = {}

    if not path.exists():
        return env_vars

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()

            if not line or line.startswith("#"):
                continue

            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()

                if value and value[0] in ('"', "'") and value[-1] == value[0]:
                    value = value[1:-1]

                if key:
                    env_vars[key] = value

    return env_vars


def _lookup(key: str, env_vars: dict[str, str]) -> Optional[str]:
    return os.environ.get(key) or env_vars.get(key) or None


def _get_str(key: str, default: str, env_vars: dict[str, str]) -> str:
    """Get string from environment, falling back to default."""
    return _lookup(key, env_vars) or default


def _get_optional_str(key: str, env_vars: dict[str, str]) -> Optional[str]:
    """Get string from environment."""
    return _lookup(key, env_vars)


def _get_path(key: str, default: Path, env_vars: dict[str, str]) -> Path:
    """Get path from environment, expanding ~ and resolving."""
    value = _lookup(key, env_vars)
    if value:
        return Path(value).expanduser().resolve()
    return default


def _get_int(key: str, default: int, env_vars: dict[str, str]) -> int:
    """Get integer from environment."""
    value = _lookup(key, env_vars)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from e


def _get_float(key: str, default: float, env_vars: dict[str, str]) -> float:
    """Get float from environment."""
    value = _lookup(key, env_vars)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from e


def _get_bool(key: str, default: bool, env_vars: dict[str, str]) -> bool:
    """Get boolean from environment."""
    value = _lookup(key, env_vars)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_set(key: str, env_vars: dict[str, str]) -> frozenset[str]:
    """Get comma separated set from environment."""
    value = _lookup(key, env_vars)
    if not value:
        return frozenset()
    return frozenset(part.strip() for part in value.split(",") if part.strip())


def load_config(env_file: Optional[Path] = None) -> Config:
    """Load configuration from environment and .env file.

    Priority:
        1. Environment variables (highest)
        2. .env file
        3. Default values (lowest)

    Args:
        env_file: Path to .env file. Defaults to .env in current directory.

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If a numeric value cannot be parsed
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"

    env_vars = load_env_file(env_file)

    return Config(
        organization_name=_get_str(
            "CHARITYFLOW_ORGANIZATION_NAME", DEFAULT_ORGANIZATION_NAME, env_vars
        ),
        staff_email=_get_str("CHARITYFLOW_STAFF_EMAIL", DEFAULT_STAFF_EMAIL, env_vars),
        app_url=_get_str("CHARITYFLOW_APP_URL", DEFAULT_APP_URL, env_vars).rstrip("/"),
        tax_id=_get_str("CHARITYFLOW_TAX_ID", DEFAULT_TAX_ID, env_vars),
        log_path=_get_path("CHARITYFLOW_LOG_PATH", DEFAULT_LOG_PATH, env_vars),
        newsletter_hour=_get_int("CHARITYFLOW_NEWSLETTER_HOUR", 10, env_vars),
        call_timeout=_get_float("CHARITYFLOW_CALL_TIMEOUT", 10.0, env_vars),
        retry_attempts=_get_int("CHARITYFLOW_RETRY_ATTEMPTS", 2, env_vars),
        retry_base_delay=_get_float("CHARITYFLOW_RETRY_BASE_DELAY", 1.0, env_vars),
        n8n_webhook_url=_get_optional_str("N8N_WEBHOOK_URL", env_vars),
        n8n_api_key=_get_optional_str("N8N_API_KEY", env_vars),
        disabled_automations=_get_set("CHARITYFLOW_DISABLED_AUTOMATIONS", env_vars),
        debug=_get_bool("CHARITYFLOW_DEBUG", False, env_vars),
        dry_run=_get_bool("CHARITYFLOW_DRY_RUN", False, env_vars),
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration.

    Checks:
        - Newsletter hour is a valid hour of day
        - Timeouts and retry settings are sane
        - Webhook credentials are not half-configured

    Args:
        config: Configuration to validate

    Returns:
        List of issues (empty if valid)
    """
    issues: list[str] = []

    if not 0 <= config.newsletter_hour <= 23:
        issues.append(
            f"CHARITYFLOW_NEWSLETTER_HOUR must be between 0 and 23, got {config.newsletter_hour}"
        )

    if config.call_timeout <= 0:
        issues.append(f"CHARITYFLOW_CALL_TIMEOUT must be positive, got {config.call_timeout}")

    if config.retry_attempts < 0:
        issues.append(
            f"CHARITYFLOW_RETRY_ATTEMPTS cannot be negative, got {config.retry_attempts}"
        )

    if config.retry_base_delay < 0:
        issues.append(
            f"CHARITYFLOW_RETRY_BASE_DELAY cannot be negative, got {config.retry_base_delay}"
        )

    if config.n8n_api_key and not config.n8n_webhook_url:
        issues.append(
            "N8N_API_KEY is set but N8N_WEBHOOK_URL is missing. "
            "External automation webhooks will not be called."
        )

    if "@" not in config.staff_email:
        issues.append(f"CHARITYFLOW_STAFF_EMAIL is not an email address: {config.staff_email}")

    return issues


# Singleton config
_config: Optional[Config] = None


def get_config() -> Config:
    """Return cached configuration singleton.

    Loads configuration on first call, returns cached version thereafter.

    Returns:
        Application configuration
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset cached configuration.

    Used primarily for testing.
    """
    global _config
    _config = None
