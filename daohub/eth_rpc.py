"""Minimal Ethereum JSON-RPC client used for reading chain time."""

import itertools
import logging
from typing import Any, Dict, Mapping, Optional, Union

import requests

from daohub.audit_logger import AuditLogger, get_audit_logger
from daohub.config import get_config

logger = logging.getLogger(__name__)

BlockIdentifier = Union[str, int]


class RpcError(Exception):
    """Base exception for chain RPC errors."""

    pass


class JSONRPCException(RpcError):
    """The node answered with a JSON-RPC ``error`` member."""

    def __init__(self, error: Mapping[str, Any]):
        self.error = dict(error)
        self.code = self.error.get("code")
        super().__init__(self.error.get("message") or str(self.error))


class RpcTransportError(RpcError):
    """HTTP failure or an undecodable response body."""

    pass


def build_request(method: str, params: list, request_id: int = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "method": method, "params": params, "id": request_id}


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity (``"0x1b4"``); ints pass through."""
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid hex quantity: {value!r}")
    return int(value, 16)


def _encode_block_identifier(block_identifier: BlockIdentifier) -> str:
    if isinstance(block_identifier, int):
        return hex(block_identifier)
    return block_identifier


class EthRpcClient:
    """
    Synchronous JSON-RPC 2.0 client over HTTP.

    Args:
        url: Node endpoint (e.g. an Infura/Alchemy URL or a local node)
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = 10,
        session: Optional[requests.Session] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.audit = audit_logger or get_audit_logger()
        self._ids = itertools.count(1)

    def call(self, method: str, *params: Any) -> Any:
        try:
            result = self._call(method, list(params))
        except RpcError as e:
            self.audit.log_rpc_call(method, success=False, error=str(e))
            raise
        self.audit.log_rpc_call(method, success=True)
        return result

    def _call(self, method: str, params: list) -> Any:
        payload = build_request(method, params, next(self._ids))
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise RpcTransportError(f"{method} request failed: {e}") from e

        if resp.status_code >= 300:
            raise RpcTransportError(f"{method} failed: HTTP {resp.status_code} {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise RpcTransportError(f"{method} returned a non-JSON body") from e

        if data.get("error"):
            raise JSONRPCException(data["error"])
        return data.get("result")

    def get_block(self, block_identifier: BlockIdentifier = "latest", full_transactions: bool = False) -> Optional[Dict[str, Any]]:
        """
        Fetch a block header.

        Returns:
            Dict with integer ``timestamp`` and ``number`` plus the raw ``hash``,
            or None when the node does not know the block
        """
        raw = self.call("eth_getBlockByNumber", _encode_block_identifier(block_identifier), full_transactions)
        if raw is None:
            return None

        block = {"hash": raw.get("hash")}
        for field in ("timestamp", "number"):
            if raw.get(field) is not None:
                block[field] = hex_to_int(raw[field])
        return block

    def __repr__(self) -> str:
        return f"EthRpcClient(url={self.url!r}, timeout={self.timeout!r})"


def get_rpc_client(cfg: Optional[Mapping[str, Any]] = None) -> Optional[EthRpcClient]:
    """
    Create an RPC client from configuration.

    Returns:
        EthRpcClient, or None when no ETH_RPC_URL is configured
    """
    if cfg is None:
        cfg = get_config()

    url = cfg.get("ETH_RPC_URL")
    if not url:
        return None
    return EthRpcClient(url, timeout=cfg.get("ETH_RPC_TIMEOUT", 10))
