"""Configuration management for daohub-core.

Centralises environment variable loading and validation logic while keeping the
public API intentionally simple.
"""

from __future__ import annotations

import os
import warnings
from typing import Any, Mapping, Optional, TypedDict

from dotenv import load_dotenv

load_dotenv()

_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_SAME_SITE_VALUES = {"strict", "lax", "none"}

DEV_CSRF_SECRET = "default-dev-secret"


class AppConfig(TypedDict):
    """Typed representation of the application's configuration."""

    NODE_ENV: str
    FLASK_SECRET_KEY: Optional[str]
    APP_NAME: str
    APP_VERSION: str
    APP_HOST: str
    APP_PORT: int
    LOG_LEVEL: str
    ETH_RPC_URL: Optional[str]
    ETH_RPC_TIMEOUT: int
    AUCTION_GRACE_PERIOD_SECONDS: int
    CSRF_ENABLED: bool
    CSRF_SECRET: Optional[str]
    CSRF_COOKIE_NAME: str
    CSRF_HEADER_NAME: str
    CSRF_TOKEN_LENGTH: int
    CSRF_SAME_SITE: str
    CSRF_SECURE: bool
    CSRF_HTTP_ONLY: bool
    CSRF_MAX_AGE: int
    RATE_LIMIT_ENABLED: bool
    RATE_LIMIT_DEFAULT: str
    FORCE_HTTPS: bool
    REDIS_URL: Optional[str]


def _get_env_bool(name: str, default: bool) -> bool:
    """Return an environment variable as a boolean."""

    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in _TRUTHY_VALUES


def _get_env_int(name: str, default: int) -> int:
    """Return an environment variable as an integer, raising on invalid input."""

    raw_value = os.getenv(name)
    if raw_value is None or raw_value == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer (got {raw_value!r})") from exc


def get_node_env() -> str:
    """Return the normalised deployment environment name."""
    return os.getenv("NODE_ENV", "development").strip().lower()


def is_production(env: Optional[str] = None) -> bool:
    return (env if env is not None else get_node_env()) == "production"


def get_config() -> AppConfig:
    """Load application configuration from environment variables."""

    node_env = get_node_env()
    production = is_production(node_env)

    return {
        # Runtime
        "NODE_ENV": node_env,
        "FLASK_SECRET_KEY": os.getenv("FLASK_SECRET_KEY"),
        "APP_NAME": os.getenv("APP_NAME", "daohub-core"),
        "APP_VERSION": os.getenv("APP_VERSION", "0.3.0"),
        "APP_HOST": os.getenv("APP_HOST", "0.0.0.0"),
        "APP_PORT": _get_env_int("APP_PORT", 5000),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        # Chain access
        "ETH_RPC_URL": os.getenv("ETH_RPC_URL") or os.getenv("RPC_URL"),
        "ETH_RPC_TIMEOUT": _get_env_int("ETH_RPC_TIMEOUT", 10),
        "AUCTION_GRACE_PERIOD_SECONDS": _get_env_int("AUCTION_GRACE_PERIOD_SECONDS", 30),
        # CSRF (secret is required in production, see validate_config)
        "CSRF_ENABLED": _get_env_bool("CSRF_ENABLED", True),
        "CSRF_SECRET": os.getenv("CSRF_SECRET"),
        "CSRF_COOKIE_NAME": os.getenv("CSRF_COOKIE_NAME", "_csrf_token"),
        "CSRF_HEADER_NAME": os.getenv("CSRF_HEADER_NAME", "x-csrf-token"),
        "CSRF_TOKEN_LENGTH": _get_env_int("CSRF_TOKEN_LENGTH", 32),
        "CSRF_SAME_SITE": os.getenv("CSRF_SAME_SITE", "strict").strip().lower(),
        "CSRF_SECURE": _get_env_bool("CSRF_SECURE", production),
        "CSRF_HTTP_ONLY": _get_env_bool("CSRF_HTTP_ONLY", False),
        "CSRF_MAX_AGE": _get_env_int("CSRF_MAX_AGE", 86400),
        # Rate limiting
        "RATE_LIMIT_ENABLED": _get_env_bool("RATE_LIMIT_ENABLED", True),
        "RATE_LIMIT_DEFAULT": os.getenv("RATE_LIMIT_DEFAULT", "100/hour"),
        "FORCE_HTTPS": _get_env_bool("FORCE_HTTPS", production),
        "REDIS_URL": os.getenv("REDIS_URL") or os.getenv("REDIS_DSN"),
    }


def validate_config(config: Mapping[str, Any]) -> bool:
    """Validate critical configuration values.

    Args:
        config: Configuration mapping to validate.

    Returns:
        True if configuration is valid, raises ValueError otherwise.
    """

    same_site = str(config.get("CSRF_SAME_SITE") or "strict").lower()
    if same_site not in _SAME_SITE_VALUES:
        raise ValueError(f"CSRF_SAME_SITE must be one of strict, lax, none (got {same_site!r})")

    if config.get("NODE_ENV") == "production":
        if not config.get("CSRF_SECRET"):
            raise ValueError("CSRF_SECRET must be set for production!")

        if not config.get("FLASK_SECRET_KEY"):
            raise ValueError("FLASK_SECRET_KEY must be set for production!")

        if not config.get("ETH_RPC_URL"):
            warnings.warn(
                "ETH_RPC_URL not set - auction timing will fall back to the local clock!",
                stacklevel=2,
            )

    return True
