"""
CSRF protection using the double-submit cookie pattern.

A random token is handed to the browser in a cookie as ``token.signature``,
where the signature is an HMAC-SHA256 of the token keyed by the server secret.
State-mutating requests must echo the token back in a header or body field.
Verification needs only the secret, so nothing is stored server-side.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import asdict, dataclass, replace
from functools import wraps
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from flask import Flask, Response, current_app, g, jsonify, make_response, request

from daohub.audit_logger import AuditLogger, get_audit_logger
from daohub.config import DEV_CSRF_SECRET, get_config, get_node_env, is_production
from daohub.metrics import csrf_failures

logger = logging.getLogger(__name__)

STATE_MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
BODY_TOKEN_FIELDS = ("_csrf_token", "csrfToken")

CSRF_ERROR_BODY = {
    "error": "Forbidden",
    "message": "CSRF token validation failed",
    "code": "CSRF_INVALID",
}


class CSRFConfigurationError(ValueError):
    """Raised at construction when the protection cannot be configured safely."""

    pass


@dataclass(frozen=True)
class CSRFOptions:
    secret: Optional[str] = None
    cookie_name: Optional[str] = None
    header_name: Optional[str] = None
    token_length: Optional[int] = None
    same_site: Optional[str] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = None
    max_age: Optional[int] = None


def default_options(environment: str) -> CSRFOptions:
    production = is_production(environment)
    return CSRFOptions(
        secret="" if production else DEV_CSRF_SECRET,
        cookie_name="_csrf_token",
        header_name="x-csrf-token",
        token_length=32,
        same_site="strict",
        secure=production,
        http_only=False,
        max_age=86400,
    )


def is_state_mutating_method(method: Optional[str]) -> bool:
    return (method or "GET").upper() in STATE_MUTATING_METHODS


def get_client_ip(req) -> str:
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return req.remote_addr or "unknown"


def csrf_exempt(view: Callable) -> Callable:
    """Skip the app-wide CSRF check for this view."""
    view._csrf_exempt = True  # type: ignore[attr-defined]
    return view


class CSRFProtection:
    """
    Stateless double-submit CSRF protection for Flask.

    Args:
        options: CSRFOptions or mapping of option names; unset values use defaults
        audit_logger: Sink for security events (defaults to the process audit logger)
        environment: Deployment environment, defaults to NODE_ENV

    Raises:
        CSRFConfigurationError: production environment without a secret
    """

    def __init__(
        self,
        options: Optional[Union[CSRFOptions, Mapping[str, Any]]] = None,
        audit_logger: Optional[AuditLogger] = None,
        environment: Optional[str] = None,
    ):
        self.environment = environment or get_node_env()
        self.audit = audit_logger or get_audit_logger()

        if isinstance(options, CSRFOptions):
            overrides = asdict(options)
        else:
            overrides = dict(options or {})
        overrides = {k: v for k, v in overrides.items() if v is not None}
        self.options = replace(default_options(self.environment), **overrides)

        if is_production(self.environment) and not self.options.secret:
            self.audit.log_security_event(
                "csrf_no_secret_production", "critical", {"environment": self.environment}
            )
            raise CSRFConfigurationError("CSRF secret must be configured in production")

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any], audit_logger: Optional[AuditLogger] = None) -> "CSRFProtection":
        options = CSRFOptions(
            secret=cfg.get("CSRF_SECRET"),
            cookie_name=cfg.get("CSRF_COOKIE_NAME"),
            header_name=cfg.get("CSRF_HEADER_NAME"),
            token_length=cfg.get("CSRF_TOKEN_LENGTH"),
            same_site=cfg.get("CSRF_SAME_SITE"),
            secure=cfg.get("CSRF_SECURE"),
            http_only=cfg.get("CSRF_HTTP_ONLY"),
            max_age=cfg.get("CSRF_MAX_AGE"),
        )
        return cls(options, audit_logger=audit_logger, environment=cfg.get("NODE_ENV"))

    # -- tokens -------------------------------------------------------------

    def _generate_token(self) -> str:
        return secrets.token_hex(self.options.token_length)

    def sign_token(self, token: str) -> str:
        return hmac.new(self.options.secret.encode(), token.encode(), hashlib.sha256).hexdigest()

    def verify_signature(self, token: str, signature: str) -> bool:
        expected = self.sign_token(token)
        if len(signature) != len(expected):
            return False
        return hmac.compare_digest(signature.encode(), expected.encode())

    def set_csrf_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            self.options.cookie_name,
            f"{token}.{self.sign_token(token)}",
            max_age=self.options.max_age,
            path="/",
            secure=self.options.secure,
            httponly=self.options.http_only,
            samesite=self.options.same_site,
        )

    def parse_csrf_cookie(self, req) -> Optional[Tuple[str, str]]:
        """Return ``(token, signature)`` from the request cookie, if well formed."""
        value = req.cookies.get(self.options.cookie_name)
        if not value:
            return None

        parts = value.split(".")
        if len(parts) != 2:
            return None
        return parts[0], parts[1]

    def _get_token_from_header(self, req) -> Optional[str]:
        return req.headers.get(self.options.header_name) or None

    def _get_token_from_body(self, req) -> Optional[str]:
        data = req.get_json(silent=True) if req.is_json else None
        if not isinstance(data, dict):
            data = req.form
        for field in BODY_TOKEN_FIELDS:
            value = data.get(field)
            if value and isinstance(value, str):
                return value
        return None

    def _request_context(self, req) -> dict:
        return {
            "method": req.method,
            "url": req.url,
            "ip": get_client_ip(req),
            "userAgent": req.headers.get("User-Agent"),
        }

    # -- public operations ---------------------------------------------------

    def generate_token_for_request(self, req, response: Response) -> str:
        """Mint a token, set its signed cookie on ``response`` and return the raw token."""
        token = self._generate_token()
        self.set_csrf_cookie(response, token)

        self.audit.log_debug(
            "CSRF token generated",
            method=req.method,
            url=req.url,
            ip=get_client_ip(req),
            tokenLength=len(token),
        )
        return token

    def _failure_reason(self, req) -> Optional[str]:
        if not is_state_mutating_method(req.method):
            return None

        cookie = self.parse_csrf_cookie(req)
        if cookie is None:
            self.audit.log_security_event("csrf_missing_cookie", "medium", self._request_context(req))
            return "missing_cookie"

        cookie_token, signature = cookie
        if not self.verify_signature(cookie_token, signature):
            self.audit.log_security_event("csrf_invalid_cookie_signature", "high", self._request_context(req))
            return "invalid_cookie_signature"

        request_token = self._get_token_from_header(req) or self._get_token_from_body(req)
        if not request_token:
            details = self._request_context(req)
            details["hasCookie"] = True
            self.audit.log_security_event("csrf_missing_token", "medium", details)
            return "missing_token"

        if cookie_token != request_token:
            details = self._request_context(req)
            # prefixes only
            details["cookieToken"] = cookie_token[:8] + "..."
            details["requestToken"] = request_token[:8] + "..."
            self.audit.log_security_event("csrf_token_mismatch", "high", details)
            return "token_mismatch"

        self.audit.log_debug("CSRF token validation successful", method=req.method, url=req.url, ip=get_client_ip(req))
        return None

    def validate_token(self, req) -> bool:
        """True for safe methods and for mutating requests carrying a matching, signed token."""
        reason = self._failure_reason(req)
        if reason is not None:
            csrf_failures.labels(reason=reason).inc()
            return False
        return True

    def get_token(self, req) -> Optional[str]:
        """Token for the current request: the cookie's, or one minted for this response."""
        cookie = self.parse_csrf_cookie(req)
        if cookie is not None and self.verify_signature(*cookie):
            return cookie[0]

        pending = g.get("csrf_token")
        if pending is None:
            pending = self._generate_token()
            g.csrf_token = pending
        return pending

    # -- flask integration ---------------------------------------------------

    def protect(self) -> Optional[Response]:
        """Validate the current request; returns the 403 response on failure."""
        if not is_state_mutating_method(request.method) or g.get("csrf_checked"):
            return None

        g.csrf_checked = True
        if self.validate_token(request):
            return None

        self.audit.log_security_event("csrf_validation_failed", "high", self._request_context(request))
        return make_response(jsonify(CSRF_ERROR_BODY), 403)

    def attach_cookie(self, response: Response) -> Response:
        """Set a cookie on safe responses whose request had none."""
        if g.get("csrf_cookie_set"):
            return response

        pending = g.get("csrf_token")
        if pending is not None:
            self.set_csrf_cookie(response, pending)
            g.csrf_cookie_set = True
        elif not is_state_mutating_method(request.method) and self.parse_csrf_cookie(request) is None:
            self.generate_token_for_request(request, response)
            g.csrf_cookie_set = True
        return response

    def init_app(self, app: Flask) -> None:
        """Install the app-wide check and cookie issuing hooks."""
        app.extensions["csrf"] = self

        @app.before_request
        def _csrf_before_request():
            view = app.view_functions.get(request.endpoint) if request.endpoint else None
            if view is not None and getattr(view, "_csrf_exempt", False):
                return None
            return self.protect()

        @app.after_request
        def _csrf_after_request(response):
            return self.attach_cookie(response)

        logger.info(
            "CSRF protection enabled: cookie=%s header=%s secure=%s",
            self.options.cookie_name,
            self.options.header_name,
            self.options.secure,
        )


_csrf_protection: Optional[CSRFProtection] = None


def get_csrf_protection() -> CSRFProtection:
    """Shared instance built from environment configuration."""
    global _csrf_protection

    if _csrf_protection is None:
        _csrf_protection = CSRFProtection.from_config(get_config())
    return _csrf_protection


def _active_protection() -> CSRFProtection:
    if not current_app:
        return get_csrf_protection()
    protection = g.get("csrf_protection") or current_app.extensions.get("csrf")
    return protection or get_csrf_protection()


def csrf_protect(view: Optional[Callable] = None, *, options: Optional[Union[CSRFOptions, Mapping[str, Any]]] = None):
    """
    Wrap a view with CSRF validation and cookie issuing.

    For apps that do not install the app-wide hooks. With ``options`` a
    dedicated CSRFProtection is built immediately, so misconfiguration fails
    at import time.
    """
    dedicated = CSRFProtection(options) if options else None

    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapped(*args, **kwargs):
            protection = dedicated or _active_protection()
            g.csrf_protection = protection
            rejection = protection.protect()
            if rejection is not None:
                return rejection
            response = make_response(fn(*args, **kwargs))
            return protection.attach_cookie(response)

        return wrapped

    if view is not None:
        return decorator(view)
    return decorator


def get_csrf_token(req=None) -> Optional[str]:
    """Token the client should echo back, for embedding in pages or JSON."""
    return _active_protection().get_token(req or request)
