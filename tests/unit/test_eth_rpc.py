"""
Unit tests for the Ethereum JSON-RPC client.
"""

from unittest.mock import MagicMock

import pytest
import requests

from daohub.eth_rpc import (
    EthRpcClient,
    JSONRPCException,
    RpcError,
    RpcTransportError,
    get_rpc_client,
    hex_to_int,
)


def _response(status_code=200, payload=None, text=""):
    resp = MagicMock(name="response")
    resp.status_code = status_code
    resp.text = text
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def session():
    return MagicMock(name="session")


@pytest.fixture
def rpc(session):
    return EthRpcClient("http://127.0.0.1:8545", timeout=5, session=session)


class TestCall:

    def test_call_sends_envelope(self, rpc, session):
        session.post.return_value = _response(payload={"jsonrpc": "2.0", "id": 1, "result": "0x1"})

        assert rpc.call("eth_chainId") == "0x1"

        args, kwargs = session.post.call_args
        assert args[0] == "http://127.0.0.1:8545"
        assert kwargs["json"] == {"jsonrpc": "2.0", "method": "eth_chainId", "params": [], "id": 1}
        assert kwargs["timeout"] == 5

    def test_request_ids_increase(self, rpc, session):
        session.post.return_value = _response(payload={"result": None})

        rpc.call("eth_blockNumber")
        rpc.call("eth_blockNumber")

        ids = [c.kwargs["json"]["id"] for c in session.post.call_args_list]
        assert ids == [1, 2]

    def test_rpc_error_member_raises(self, rpc, session):
        session.post.return_value = _response(payload={"error": {"code": -32601, "message": "method not found"}})

        with pytest.raises(JSONRPCException, match="method not found") as exc_info:
            rpc.call("eth_nope")

        assert exc_info.value.code == -32601
        assert isinstance(exc_info.value, RpcError)

    def test_http_error_raises(self, rpc, session):
        session.post.return_value = _response(status_code=502, text="bad gateway")

        with pytest.raises(RpcTransportError, match="502"):
            rpc.call("eth_blockNumber")

    def test_non_json_raises(self, rpc, session):
        session.post.return_value = _response(payload=ValueError("Expecting value"))

        with pytest.raises(RpcTransportError, match="non-JSON"):
            rpc.call("eth_blockNumber")

    def test_connection_error_raises(self, rpc, session):
        session.post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RpcTransportError, match="refused"):
            rpc.call("eth_blockNumber")


class TestGetBlock:

    def test_decodes_quantities(self, rpc, session):
        session.post.return_value = _response(
            payload={"result": {"timestamp": "0x6553f100", "number": "0x11a49a0", "hash": "0xabc", "gasUsed": "0x0"}}
        )

        block = rpc.get_block("latest")

        assert block == {"timestamp": 0x6553F100, "number": 0x11A49A0, "hash": "0xabc"}
        assert session.post.call_args.kwargs["json"]["params"] == ["latest", False]

    def test_integer_identifier_is_hex_encoded(self, rpc, session):
        session.post.return_value = _response(payload={"result": {"timestamp": "0x1", "number": "0xff"}})

        rpc.get_block(255)

        assert session.post.call_args.kwargs["json"]["params"] == ["0xff", False]

    def test_unknown_block_is_none(self, rpc, session):
        session.post.return_value = _response(payload={"result": None})

        assert rpc.get_block(10**12) is None


class TestHelpers:

    @pytest.mark.parametrize("value, expected", [("0x0", 0), ("0x1b4", 436), (7, 7)])
    def test_hex_to_int(self, value, expected):
        assert hex_to_int(value) == expected

    @pytest.mark.parametrize("value", ["", None, "zz"])
    def test_hex_to_int_rejects(self, value):
        with pytest.raises(ValueError):
            hex_to_int(value)

    def test_get_rpc_client_unconfigured(self):
        assert get_rpc_client({"ETH_RPC_URL": None}) is None

    def test_get_rpc_client_configured(self):
        client = get_rpc_client({"ETH_RPC_URL": "https://rpc.example.org", "ETH_RPC_TIMEOUT": 4})

        assert isinstance(client, EthRpcClient)
        assert client.url == "https://rpc.example.org"
        assert client.timeout == 4
