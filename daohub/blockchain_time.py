"""
Blockchain time reconciliation for auctions.

Resolves "now" against the latest block of a chain node and falls back to the
local clock when the node cannot be read. Auction windows carry a fixed safety
buffer that is hidden from users and only gates bid acceptance.

None of the time readers raise: a failed chain read is returned as a
``BlockchainTimeResult`` with ``is_accurate=False``.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from daohub.eth_rpc import build_request, hex_to_int
from daohub.metrics import blockchain_time_fallbacks

logger = logging.getLogger(__name__)

AUCTION_SAFETY_BUFFER_SECONDS = 180
AUCTION_SAFETY_BUFFER_MS = AUCTION_SAFETY_BUFFER_SECONDS * 1000
DEFAULT_GRACE_PERIOD_SECONDS = 30

ENDED_ON_CHAIN_REASON = "Auction has ended according to blockchain time"
ENDED_LOCALLY_REASON = "Auction has ended according to local time (blockchain time unavailable)"
AUCTION_ENDED_DISPLAY = "Auction Ended"


@dataclass(frozen=True)
class BlockchainTimeResult:
    timestamp: int
    block_number: int
    is_accurate: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "blockNumber": self.block_number, "isAccurate": self.is_accurate}


@dataclass(frozen=True)
class AuctionEndTimes:
    user_end_time: int
    actual_end_time: int
    buffer_seconds: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userEndTime": self.user_end_time,
            "actualEndTime": self.actual_end_time,
            "bufferSeconds": self.buffer_seconds,
        }


@dataclass(frozen=True)
class BidAcceptanceDecision:
    can_bid: bool
    time_remaining: int
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"canBid": self.can_bid, "timeRemaining": self.time_remaining}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


@dataclass(frozen=True)
class AuctionDurationDisplay:
    user_display: str
    actual_remaining: int
    has_buffer: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userDisplay": self.user_display,
            "actualRemaining": self.actual_remaining,
            "hasBuffer": self.has_buffer,
        }


def local_time_fallback() -> BlockchainTimeResult:
    """Current local clock reading, flagged as not chain-confirmed."""
    return BlockchainTimeResult(timestamp=int(time.time()), block_number=0, is_accurate=False)


def _block_field(block: Any, name: str) -> Any:
    # web3 AttributeDicts, plain dicts and attribute objects all show up here
    if isinstance(block, dict):
        return block.get(name)
    try:
        return block[name]
    except (KeyError, TypeError, IndexError):
        return getattr(block, name, None)


def get_blockchain_time(client: Optional[Any] = None) -> BlockchainTimeResult:
    """
    Read the timestamp of the latest block.

    Args:
        client: Object exposing ``get_block(block_identifier)``, e.g. an
            ``EthRpcClient`` or a web3 ``w3.eth``. None means no chain access.

    Returns:
        Chain time with ``is_accurate=True``, or the local clock on any failure
    """
    if client is None:
        logger.warning("No chain client available, falling back to local time")
        blockchain_time_fallbacks.labels(source="client").inc()
        return local_time_fallback()

    try:
        block = client.get_block("latest")
        timestamp = _block_field(block, "timestamp") if block is not None else None
        if not timestamp:
            raise ValueError("Failed to get block timestamp")

        result = BlockchainTimeResult(
            timestamp=int(timestamp),
            block_number=int(_block_field(block, "number") or 0),
            is_accurate=True,
        )
        logger.info(
            "Fetched blockchain time: timestamp=%s block=%s", result.timestamp, result.block_number
        )
        return result
    except Exception as e:
        logger.error(f"Failed to fetch blockchain time, falling back to local time: {e}", exc_info=True)
        blockchain_time_fallbacks.labels(source="client").inc()
        return local_time_fallback()


def get_blockchain_time_standalone(rpc_url: Optional[str] = None, timeout: Optional[float] = None) -> BlockchainTimeResult:
    """
    Read the latest block time with a raw ``eth_getBlockByNumber`` call.

    For code paths that have no client object. ``timeout`` is passed to
    ``requests``; None leaves the request unbounded.
    """
    if not rpc_url:
        logger.warning("No RPC URL provided for standalone blockchain time fetch, falling back to local time")
        blockchain_time_fallbacks.labels(source="standalone").inc()
        return local_time_fallback()

    try:
        resp = requests.post(
            rpc_url,
            json=build_request("eth_getBlockByNumber", ["latest", False]),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        data = resp.json()

        error = data.get("error")
        result = data.get("result")
        if error or not result or not result.get("timestamp"):
            message = error.get("message") if isinstance(error, dict) else None
            raise ValueError(message or "Failed to get block data")

        timestamp = hex_to_int(result["timestamp"])
        block_number = hex_to_int(result.get("number"))

        logger.info("Fetched standalone blockchain time: timestamp=%s block=%s", timestamp, block_number)
        return BlockchainTimeResult(timestamp=timestamp, block_number=block_number, is_accurate=True)
    except Exception as e:
        logger.error(f"Failed to fetch standalone blockchain time, falling back to local time: {e}")
        blockchain_time_fallbacks.labels(source="standalone").inc()
        return local_time_fallback()


def calculate_auction_end_time(start_timestamp: int, duration_hours: float, include_buffer: bool = True) -> AuctionEndTimes:
    """
    Derive the displayed and the enforced end of an auction.

    Args:
        start_timestamp: Start time in seconds (blockchain time)
        duration_hours: User-intended duration, fractions allowed
        include_buffer: Whether to add the safety buffer to the enforced end
    """
    duration_seconds = int(duration_hours * 3600)
    buffer_seconds = AUCTION_SAFETY_BUFFER_SECONDS if include_buffer else 0

    user_end_time = int(start_timestamp) + duration_seconds
    return AuctionEndTimes(
        user_end_time=user_end_time,
        actual_end_time=user_end_time + buffer_seconds,
        buffer_seconds=buffer_seconds,
    )


def can_accept_bids(
    auction_end_time: int,
    blockchain_time: BlockchainTimeResult,
    grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS,
) -> BidAcceptanceDecision:
    """
    Decide whether an auction still takes bids.

    Zero seconds remaining counts as ended.
    """
    time_remaining = auction_end_time - blockchain_time.timestamp - grace_period_seconds

    if time_remaining <= 0:
        reason = ENDED_ON_CHAIN_REASON if blockchain_time.is_accurate else ENDED_LOCALLY_REASON
        return BidAcceptanceDecision(can_bid=False, time_remaining=time_remaining, reason=reason)

    return BidAcceptanceDecision(can_bid=True, time_remaining=time_remaining)


def format_auction_duration(user_end_time: int, actual_end_time: int, current_time: int) -> AuctionDurationDisplay:
    """Countdown text for users. Always computed from ``user_end_time``."""
    user_remaining = user_end_time - current_time
    actual_remaining = actual_end_time - current_time
    has_buffer = actual_end_time > user_end_time

    user_display = AUCTION_ENDED_DISPLAY
    if user_remaining > 0:
        # floor keeps fractional inputs on whole seconds
        remaining = math.floor(user_remaining)
        days, remaining = divmod(remaining, 86400)
        hours, remaining = divmod(remaining, 3600)
        minutes, seconds = divmod(remaining, 60)

        if days > 0:
            user_display = f"{days}d {hours}h {minutes}m"
        elif hours > 0:
            user_display = f"{hours}h {minutes}m {seconds}s"
        else:
            user_display = f"{minutes}m {seconds}s"

    return AuctionDurationDisplay(user_display=user_display, actual_remaining=actual_remaining, has_buffer=has_buffer)


class BlockchainClock:
    """
    Chain-time operations bound to one source.

    A client object takes precedence; with only an RPC URL the standalone
    JSON-RPC path is used; with neither every read is the local clock.
    """

    def __init__(self, client: Optional[Any] = None, rpc_url: Optional[str] = None, timeout: Optional[float] = None):
        self.client = client
        self.rpc_url = rpc_url
        self.timeout = timeout

    def get_time(self) -> BlockchainTimeResult:
        if self.client is None and self.rpc_url:
            return get_blockchain_time_standalone(self.rpc_url, timeout=self.timeout)
        return get_blockchain_time(self.client)

    def calculate_end_time(self, start_timestamp: int, duration_hours: float, include_buffer: bool = True) -> AuctionEndTimes:
        return calculate_auction_end_time(start_timestamp, duration_hours, include_buffer)

    def can_accept_bids(
        self,
        auction_end_time: int,
        blockchain_time: Optional[BlockchainTimeResult] = None,
        grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS,
    ) -> BidAcceptanceDecision:
        if blockchain_time is None:
            blockchain_time = self.get_time()
        return can_accept_bids(auction_end_time, blockchain_time, grace_period_seconds)
