"""
Studio configuration loading with validation.

Settings live in the [studio] table of a TOML file (default
.streamlit/studio.toml); a few can be overridden through environment
variables.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Optional, Tuple

import toml

from ..api.error_handler import RetryConfig
from .export import DEFAULT_FILENAME_TEMPLATE
from .polling import BackoffPolicy, INITIAL_DELAY_MS, MAX_DELAY_MS, DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(".streamlit/studio.toml")

ENV_OVERRIDES = {
    "GENSTUDIO_API_TOKEN": "api_token",
    "GENSTUDIO_BASE_URL": "base_url",
    "GENSTUDIO_CONCURRENCY": "concurrency_limit",
}


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass
class StudioConfig:
    api_token: str = ""
    base_url: str = "http://localhost:5678/webhook"
    model: str = "default"
    endpoints: Dict[str, str] = field(default_factory=dict)
    concurrency_limit: int = 5
    requires_public_url: bool = True
    request_timeout: float = 30.0
    http_max_attempts: int = 3
    http_base_delay: float = 1.0
    poll_initial_delay_ms: int = INITIAL_DELAY_MS
    poll_max_delay_ms: int = MAX_DELAY_MS
    poll_timeout_ms: int = DEFAULT_TIMEOUT_MS
    filename_template: str = DEFAULT_FILENAME_TEMPLATE

    def validate(self) -> None:
        if self.concurrency_limit < 1:
            raise ConfigError("concurrency_limit must be at least 1")
        if self.http_max_attempts < 1:
            raise ConfigError("http_max_attempts must be at least 1")
        if self.request_timeout <= 0 or self.http_base_delay < 0:
            raise ConfigError("request_timeout must be positive and http_base_delay non-negative")
        try:
            self.backoff_policy()
        except ValueError as e:
            raise ConfigError(str(e))

    def backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial_delay_ms=self.poll_initial_delay_ms,
            max_delay_ms=self.poll_max_delay_ms,
            timeout_ms=self.poll_timeout_ms,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(max_attempts=self.http_max_attempts, base_delay=self.http_base_delay)


def validate_api_token(token: str) -> Tuple[bool, Optional[str]]:
    """
    Validate API token format.

    Args:
        token: API token to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not token or not token.strip():
        return False, "API token cannot be empty"

    token = token.strip()

    if any(ch.isspace() for ch in token):
        return False, "API token must not contain whitespace"

    if len(token) < 16:
        return False, "Token appears too short to be valid"

    return True, None


def _coerce(name: str, value):
    """Convert a raw TOML/env value to the type of the StudioConfig field."""
    field_type = StudioConfig.__dataclass_fields__[name].type
    try:
        if name == "endpoints":
            return {str(k): str(v) for k, v in dict(value).items()}
        if field_type is bool:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes")
            return bool(value)
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
        return str(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid value for {name}: {value!r}")


def load_config(config_path: Path = CONFIG_PATH, environ: Optional[Dict[str, str]] = None) -> StudioConfig:
    """
    Load the studio configuration.

    A missing or unreadable file yields defaults (logged); environment
    overrides are applied on top.

    Args:
        config_path: Path to the TOML file
        environ: Environment mapping (os.environ by default)

    Returns:
        Validated StudioConfig

    Raises:
        ConfigError: a value is present but invalid
    """
    environ = os.environ if environ is None else environ
    values = {}
    known = {f.name for f in fields(StudioConfig)}

    if not config_path.exists():
        logger.info(f"Config file not found: {config_path}")
    else:
        try:
            loaded = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            logger.error(f"Failed to load config: {e}")
            loaded = {}

        for name, value in loaded.get("studio", {}).items():
            if name not in known:
                logger.warning(f"Ignoring unknown config key: {name}")
                continue
            values[name] = _coerce(name, value)

    for env_name, name in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[name] = _coerce(name, environ[env_name])

    config = StudioConfig(**values)
    config.validate()

    if config.api_token:
        is_valid, error = validate_api_token(config.api_token)
        if is_valid:
            logger.info("API token loaded successfully")
        else:
            logger.warning(f"Invalid API token in config: {error}")

    return config
