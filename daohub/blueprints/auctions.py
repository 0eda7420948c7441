"""
Auctions Blueprint - Chain Time, End Times and Bid Windows

Exposes the blockchain time reconciliation helpers to the web front-end.
Every decision about whether an auction is biddable goes through
``can_accept_bids``; handlers never compare timestamps themselves.
"""

import logging
import math
from numbers import Real
from typing import Any, Dict, Optional

from flask import Blueprint, current_app, jsonify, request

from daohub.audit_logger import get_audit_logger
from daohub.blockchain_time import (
    BlockchainClock,
    calculate_auction_end_time,
    can_accept_bids,
    format_auction_duration,
)
from daohub.csrf import get_csrf_token
from daohub.security import limiter

logger = logging.getLogger(__name__)

auctions_bp = Blueprint("auctions", __name__)

TIME_RATE_LIMIT = "60 per minute"
BID_CHECK_RATE_LIMIT = "30 per minute"

MAX_DURATION_HOURS = 24 * 365


class RequestValidationError(ValueError):
    """Malformed request payload."""

    pass


@auctions_bp.errorhandler(RequestValidationError)
def handle_validation_error(e):
    return jsonify({"error": "bad_request", "message": str(e)}), 400


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise RequestValidationError("Request body must be a JSON object")
    return data


def _number(data: Dict[str, Any], field: str, required: bool = True) -> Optional[Real]:
    value = data.get(field)
    if value is None:
        if required:
            raise RequestValidationError(f"Missing field: {field}")
        return None
    if isinstance(value, bool) or not isinstance(value, Real):
        raise RequestValidationError(f"Field {field} must be a number")
    # the JSON parser accepts NaN and Infinity literals
    if not math.isfinite(value):
        raise RequestValidationError(f"Field {field} must be a finite number")
    return value


def _integer(data: Dict[str, Any], field: str, required: bool = True) -> Optional[int]:
    value = _number(data, field, required)
    if value is None:
        return None
    if int(value) != value:
        raise RequestValidationError(f"Field {field} must be a whole number of seconds")
    return int(value)


def get_clock() -> BlockchainClock:
    return current_app.extensions["blockchain_clock"]


@auctions_bp.route("/csrf-token", methods=["GET"])
@limiter.limit(TIME_RATE_LIMIT)
def csrf_token():
    """
    Hand the CSRF token to script clients.

    Returns:
        JSON with the token; the signed cookie is set on the same response
    """
    return jsonify({"csrfToken": get_csrf_token()})


@auctions_bp.route("/blockchain/time", methods=["GET"])
@limiter.limit(TIME_RATE_LIMIT)
def blockchain_time():
    """Current chain time, or the flagged local fallback."""
    return jsonify(get_clock().get_time().to_dict())


@auctions_bp.route("/auctions/end-time", methods=["POST"])
@limiter.limit(TIME_RATE_LIMIT)
def auction_end_time():
    """
    Compute user-facing and enforced end times for a new auction.

    Expected JSON body:
        - durationHours: auction length (fractions allowed)
        - startTimestamp: optional start in seconds, defaults to chain time
        - includeBuffer: optional, defaults to true

    Returns:
        JSON with userEndTime, actualEndTime, bufferSeconds and the start used
    """
    data = _json_body()
    duration_hours = _number(data, "durationHours")
    if duration_hours <= 0 or duration_hours > MAX_DURATION_HOURS:
        raise RequestValidationError("durationHours must be positive and at most one year")

    include_buffer = data.get("includeBuffer", True)
    if not isinstance(include_buffer, bool):
        raise RequestValidationError("Field includeBuffer must be a boolean")

    start = _integer(data, "startTimestamp", required=False)
    payload: Dict[str, Any] = {}
    if start is None:
        now = get_clock().get_time()
        start = now.timestamp
        payload["blockchainTime"] = now.to_dict()

    end_times = calculate_auction_end_time(start, duration_hours, include_buffer)
    get_audit_logger().log_event(
        "auction.end_time",
        start=start,
        user_end=end_times.user_end_time,
        actual_end=end_times.actual_end_time,
        ip=request.remote_addr,
    )
    payload.update(end_times.to_dict())
    payload["startTimestamp"] = start
    return jsonify(payload)


@auctions_bp.route("/auctions/bid-check", methods=["POST"])
@limiter.limit(BID_CHECK_RATE_LIMIT)
def bid_check():
    """
    Decide whether an auction still accepts bids at current chain time.

    Expected JSON body:
        - auctionEndTime: enforced end (actualEndTime) in seconds
        - gracePeriodSeconds: optional, defaults to configuration

    Returns:
        JSON with canBid, timeRemaining, optional reason and the time reading used
    """
    data = _json_body()
    auction_end_time = _integer(data, "auctionEndTime")

    grace = _integer(data, "gracePeriodSeconds", required=False)
    if grace is None:
        grace = current_app.config["APP_CONFIG"].get("AUCTION_GRACE_PERIOD_SECONDS", 30)
    if grace < 0:
        raise RequestValidationError("gracePeriodSeconds must not be negative")

    now = get_clock().get_time()
    decision = can_accept_bids(auction_end_time, now, grace)
    get_audit_logger().log_bid_check(auction_end_time, decision.can_bid, decision.time_remaining, now.is_accurate)

    payload = decision.to_dict()
    payload["blockchainTime"] = now.to_dict()
    return jsonify(payload)


@auctions_bp.route("/auctions/duration", methods=["POST"])
@limiter.limit(TIME_RATE_LIMIT)
def auction_duration():
    """Countdown text for an auction; the safety buffer is never displayed."""
    data = _json_body()
    user_end_time = _integer(data, "userEndTime")
    actual_end_time = _integer(data, "actualEndTime")
    if actual_end_time < user_end_time:
        raise RequestValidationError("actualEndTime must not be before userEndTime")

    current_time = _integer(data, "currentTime", required=False)
    if current_time is None:
        current_time = get_clock().get_time().timestamp

    return jsonify(format_auction_duration(user_end_time, actual_end_time, current_time).to_dict())
