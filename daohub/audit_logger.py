"""
Audit logging for daohub-core.

Security and chain-access events are written through Python's logging system
under the ``audit`` logger. Components receive an ``AuditLogger`` explicitly
(constructor injection); ``get_audit_logger`` only provides the process default.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_logger = logging.getLogger("audit")
_audit_logger = None  # Will be initialized by init_audit_logger


def init_audit_logger():
    """Initialize the audit logger."""
    global _audit_logger

    _logger.setLevel(logging.INFO)

    # Add console handler if not already present
    if not _logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s - AUDIT - %(levelname)s - %(message)s"))
        _logger.addHandler(handler)

    _audit_logger = AuditLogger()

    _logger.info("Audit logger initialized")
    return _audit_logger


def get_audit_logger():
    """Get the audit logger instance."""
    global _audit_logger

    if _audit_logger is None:
        init_audit_logger()
    return _audit_logger


class AuditLogger:
    """
    Audit logging interface for security events.

    Severity maps onto the log level: ``critical`` and ``high`` events are
    errors/warnings, ``medium`` and ``low`` are warnings/info.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or _logger

    def log_event(self, event: str, **details: Any) -> None:
        """Generic structured audit event."""

        payload = {"event": event, **details, "timestamp": datetime.now(timezone.utc).isoformat()}
        self.logger.info(json.dumps(payload, default=str))

    def log_debug(self, message: str, **details: Any) -> None:
        """Low-value trace line (token issued, validation passed)."""
        if details:
            message = f"{message} | {' | '.join(f'{k}={v}' for k, v in details.items())}"
        self.logger.debug(message)

    def log_security_event(self, event_type: str, severity: str, details: Dict[str, Any]):
        """Log security event."""
        msg = f"SECURITY_EVENT | type={event_type} | severity={severity} | details={details}"
        if severity == "critical":
            self.logger.error(msg)
        elif severity == "low":
            self.logger.info(msg)
        else:
            self.logger.warning(msg)

    def log_rpc_call(self, method: str, success: bool, error: Optional[str] = None):
        """Log chain JSON-RPC call."""
        status = "SUCCESS" if success else "FAILURE"
        msg = f"RPC_CALL | method={method} | status={status}"
        if error:
            msg += f" | error={error}"
        self.logger.info(msg)

    def log_bid_check(self, auction_end_time: int, can_bid: bool, time_remaining: int, accurate: bool):
        """Log a bid acceptance decision."""
        status = "OPEN" if can_bid else "CLOSED"
        source = "chain" if accurate else "local"
        self.logger.info(
            f"BID_CHECK | end={auction_end_time} | status={status} | remaining={time_remaining} | clock={source}"
        )

    def log_error(self, error_type: str, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log application error."""
        msg = f"ERROR | type={error_type} | msg={error_msg}"
        if context:
            msg += f" | context={context}"
        self.logger.error(msg)
