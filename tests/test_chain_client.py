"""Tests for the JSON-RPC chain client."""

import json

import httpx
import pytest

from rollup_tx.chain.client import JsonRpcChainClient
from rollup_tx.errors import ChainClientError

RPC_URL = "https://rpc.example.org"


def make_client(handler) -> JsonRpcChainClient:
    """Chain client whose HTTP traffic goes to ``handler``."""
    transport = httpx.MockTransport(handler)
    return JsonRpcChainClient(RPC_URL, timeout=5.0, client=httpx.AsyncClient(transport=transport))


def rpc_result(result):
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": result})

    return handler


class TestJsonRpcChainClient:
    """Tests for JsonRpcChainClient."""

    def test_requires_url(self):
        """Test that an empty RPC URL is rejected."""
        with pytest.raises(ValueError):
            JsonRpcChainClient("")

    @pytest.mark.asyncio
    async def test_pending_nonce(self):
        """Test the pending nonce request and hex parsing."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            requests.append(payload)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": "0x1a"})

        client = make_client(handler)

        nonce = await client.get_pending_nonce("0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf")

        assert nonce == 26
        assert requests[0]["method"] == "eth_getTransactionCount"
        assert requests[0]["params"] == ["0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf", "pending"]

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        """Test that each call uses a fresh request id."""
        ids = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            ids.append(payload["id"])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": "0x38"})

        client = make_client(handler)

        assert await client.chain_id() == 56
        assert await client.gas_price() == 56
        assert ids == [1, 2]

    @pytest.mark.asyncio
    async def test_estimate_gas_hex_encodes_fields(self):
        """Test that integer and bytes fields are sent as hex."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            seen.update(payload["params"][0])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": "0x5208"})

        client = make_client(handler)

        gas = await client.estimate_gas({
            "from": "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf",
            "to": "0x0000000000000000000000000000000000001234",
            "data": b"\xde\xad",
            "value": 0,
            "gasPrice": None,
        })

        assert gas == 21000
        assert seen["value"] == "0x0"
        assert seen["data"] == "0xdead"
        assert "gasPrice" not in seen

    @pytest.mark.asyncio
    async def test_broadcast(self):
        """Test that raw bytes are sent as 0x-hex and the node's hash is returned."""
        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            sent.append(payload)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": payload["id"], "result": "0xabc"})

        client = make_client(handler)

        tx_hash = await client.broadcast(b"\x01\x02")

        assert tx_hash == "0xabc"
        assert sent[0]["method"] == "eth_sendRawTransaction"
        assert sent[0]["params"] == ["0x0102"]

    @pytest.mark.asyncio
    async def test_rpc_error_object(self):
        """Test that a JSON-RPC error surfaces with its code."""

        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": payload["id"],
                "error": {"code": -32000, "message": "nonce too low"},
            })

        client = make_client(handler)

        with pytest.raises(ChainClientError, match="nonce too low") as exc_info:
            await client.broadcast(b"\x01")

        assert exc_info.value.code == -32000

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Test that HTTP failures are not replaced by default values."""
        client = make_client(lambda request: httpx.Response(500, text="upstream down"))

        with pytest.raises(ChainClientError) as exc_info:
            await client.get_pending_nonce("0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf")

        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        """Test that a non-JSON body raises ChainClientError."""
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ChainClientError, match="invalid JSON"):
            await client.gas_price()

    @pytest.mark.asyncio
    async def test_missing_result(self):
        """Test that a response without result or error is rejected."""
        client = make_client(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1}))

        with pytest.raises(ChainClientError, match="no result"):
            await client.chain_id()

    @pytest.mark.asyncio
    async def test_non_numeric_quantity(self):
        """Test that a malformed quantity is reported, not coerced."""
        client = make_client(rpc_result("pending"))

        with pytest.raises(ChainClientError, match="non-numeric"):
            await client.gas_price()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        """Test that connection failures raise ChainClientError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(ChainClientError):
            await client.chain_id()
