"""
Admin Blueprint - Health Checks and Metrics

Provides monitoring and operational endpoints for infrastructure health.
"""

import logging
import time
from typing import Any, Dict

from flask import Blueprint, Response, current_app, jsonify
from prometheus_client import generate_latest

from daohub.metrics import registry

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)

START_TIME = time.time()


def _app_info() -> Dict[str, Any]:
    cfg = current_app.config.get("APP_CONFIG", {})
    return {"service": cfg.get("APP_NAME", "daohub-core"), "version": cfg.get("APP_VERSION", "unknown")}


@admin_bp.route("/health")
def health():
    """
    Health check endpoint.

    Returns:
        JSON health status; 503 when chain time is degraded to the local clock
    """
    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": time.time(),
        **_app_info(),
        "components": {},
    }

    reading = current_app.extensions["blockchain_clock"].get_time()
    if reading.is_accurate:
        health_status["components"]["blockchain_rpc"] = {
            "status": "connected",
            "block_number": reading.block_number,
            "block_timestamp": reading.timestamp,
        }
    else:
        health_status["components"]["blockchain_rpc"] = {"status": "fallback"}
        health_status["status"] = "degraded"

    health_status["components"]["csrf"] = {
        "status": "enabled" if "csrf" in current_app.extensions else "disabled"
    }

    return jsonify(health_status), 200 if health_status["status"] == "healthy" else 503


@admin_bp.route("/health/live")
def liveness():
    """
    Liveness probe - checks if app is running.

    Returns:
        200 if process is alive
    """
    return jsonify({"status": "alive"}), 200


@admin_bp.route("/metrics")
def metrics_json():
    """JSON snapshot of the counters exported to Prometheus."""
    counters: Dict[str, Any] = {}
    for metric in registry.collect():
        for sample in metric.samples:
            if not sample.name.endswith("_total"):
                continue
            label = ",".join(f"{k}={v}" for k, v in sorted(sample.labels.items()))
            key = f"{sample.name}{{{label}}}" if label else sample.name
            counters[key] = sample.value

    return jsonify({
        "timestamp": time.time(),
        "application": {**_app_info(), "uptime": time.time() - START_TIME},
        "metrics": counters,
    }), 200


@admin_bp.route("/metrics/prometheus")
def metrics_prometheus():
    """
    Prometheus metrics endpoint.

    Returns:
        Prometheus text format metrics
    """
    return Response(generate_latest(registry), mimetype="text/plain; version=0.0.4")
