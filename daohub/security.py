"""Security helpers for configuring Flask in production."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from flask import Flask
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from werkzeug.middleware.proxy_fix import ProxyFix

from daohub.audit_logger import get_audit_logger
from daohub.csrf import CSRFProtection

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, strategy="fixed-window")


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() in {"1", "true", "yes", "on"}


def configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if not any(isinstance(handler, logging.StreamHandler) for handler in root_logger.handlers):
        handler = logging.StreamHandler()
        fmt = (
            "{\"level\":\"%(levelname)s\",\"msg\":\"%(message)s\",\"name\":\"%(name)s\",\"path\":\"%(pathname)s\","
            "\"lineno\":%(lineno)d}"
        )
        handler.setFormatter(logging.Formatter(fmt))
        root_logger.addHandler(handler)


def init_security(app: Flask, cfg: Mapping[str, Any]) -> Optional[CSRFProtection]:
    """Initialise security headers, rate limiting and CSRF protection."""

    configure_logging(cfg.get("LOG_LEVEL", "INFO"))

    # Respect reverse proxy headers for TLS detection and client IP extraction.
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)  # type: ignore[assignment]

    production = str(cfg.get("NODE_ENV") or "development").lower() == "production"
    force_https = _as_bool(cfg.get("FORCE_HTTPS"), production)
    if not force_https and production:
        logger.warning("FORCE_HTTPS disabled while NODE_ENV=production – ensure this is intentional before deploying.")

    Talisman(
        app,
        force_https=force_https,
        content_security_policy={"default-src": "'self'"},
        session_cookie_secure=force_https,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )

    app.config["RATELIMIT_ENABLED"] = cfg.get("RATE_LIMIT_ENABLED") is not False
    app.config["RATELIMIT_DEFAULT"] = cfg.get("RATE_LIMIT_DEFAULT") or "100/hour"
    app.config["RATELIMIT_STORAGE_URI"] = cfg.get("REDIS_URL") or "memory://"
    limiter.init_app(app)

    if cfg.get("CSRF_ENABLED") is False:
        logger.warning("CSRF protection disabled by configuration")
        return None

    csrf = CSRFProtection.from_config(cfg, audit_logger=get_audit_logger())
    csrf.init_app(app)
    return csrf
