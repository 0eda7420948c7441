"""
Application Factory for daohub-core

Implements the Flask application factory pattern with:
- Blueprint registration
- Security configuration (headers, rate limiting, CSRF)
- Chain time source initialization
- JSON error handling
"""

import logging
from typing import Any, Mapping, Optional

from flask import Flask, jsonify, request

from daohub.audit_logger import get_audit_logger, init_audit_logger
from daohub.blockchain_time import BlockchainClock
from daohub.config import get_config, validate_config
from daohub.eth_rpc import get_rpc_client
from daohub.metrics import request_counter
from daohub.security import init_security

logger = logging.getLogger(__name__)


def create_app(config_override: Optional[Mapping[str, Any]] = None, chain_client: Optional[Any] = None) -> Flask:
    """
    Create and configure the Flask application using the factory pattern.

    Args:
        config_override: Values layered over the environment configuration
        chain_client: Object with ``get_block``; defaults to an EthRpcClient
            for ETH_RPC_URL, or None (local clock) when unset

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__)

    cfg = dict(get_config())
    if config_override:
        cfg.update(config_override)
    validate_config(cfg)
    app.config["APP_CONFIG"] = cfg
    app.secret_key = cfg.get("FLASK_SECRET_KEY")

    init_audit_logger()
    init_security(app, cfg)

    client = chain_client if chain_client is not None else get_rpc_client(cfg)
    app.extensions["blockchain_clock"] = BlockchainClock(client=client)
    if client is None:
        logger.warning("No ETH_RPC_URL configured; auction timing uses the local clock")
    else:
        logger.info(f"Chain time source: {client!r}")

    register_blueprints(app)
    register_error_handlers(app)
    register_request_handlers(app)

    logger.info("Application factory completed successfully")
    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""

    # Auction timing API (chain time, end times, bid windows, CSRF token)
    from daohub.blueprints.auctions import auctions_bp
    app.register_blueprint(auctions_bp, url_prefix="/api")

    # Health and metrics
    from daohub.blueprints.admin import admin_bp
    app.register_blueprint(admin_bp)


def register_error_handlers(app: Flask) -> None:
    """Register global error handlers."""

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({"error": "bad_request", "message": getattr(e, "description", str(e))}), 400

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": "forbidden", "message": "Access denied"}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found", "message": "Resource not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed", "message": "Method not allowed"}), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(e):
        return jsonify({"error": "rate_limit_exceeded", "message": str(e.description)}), 429

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Internal server error: {e}", exc_info=True)
        get_audit_logger().log_error(type(e).__name__, str(e), {"path": request.path, "method": request.method})
        return jsonify({"error": "internal_error", "message": "An unexpected error occurred"}), 500


def register_request_handlers(app: Flask) -> None:
    """Register after request handlers."""

    @app.after_request
    def count_request(response):
        request_counter.labels(
            method=request.method,
            endpoint=request.endpoint or "unknown",
            status=response.status_code,
        ).inc()
        return response
