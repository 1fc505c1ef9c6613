"""Chain client over JSON-RPC.

Only the calls needed to authorize and broadcast a transaction:
pending nonce, gas price, gas estimation, chain id and raw broadcast.
"""

import asyncio
import itertools
import logging
from typing import Any, Optional, Protocol

import httpx

from rollup_tx.errors import ChainClientError

logger = logging.getLogger(__name__)

DEFAULT_RPC_TIMEOUT = 30.0


class ChainClient(Protocol):
    """Chain operations used by the options builder and contract layer."""

    async def get_pending_nonce(self, address: str) -> int:
        ...

    async def gas_price(self) -> int:
        ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        ...

    async def chain_id(self) -> int:
        ...

    async def broadcast(self, raw_tx: bytes) -> str:
        ...


def _to_hex_quantity(value: int) -> str:
    return hex(value)


def _rpc_tx(tx: dict[str, Any]) -> dict[str, Any]:
    """Convert a web3-style transaction dict to JSON-RPC field encoding."""
    encoded: dict[str, Any] = {}
    for key, value in tx.items():
        if value is None:
            continue
        if isinstance(value, int):
            encoded[key] = _to_hex_quantity(value)
        elif isinstance(value, (bytes, bytearray)):
            encoded[key] = "0x" + bytes(value).hex()
        else:
            encoded[key] = value
    return encoded


class JsonRpcChainClient:
    """ChainClient implementation on top of httpx.

    Errors are raised, never replaced by fallback values: a wrong nonce or
    gas price would produce a transaction the chain rejects.
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            rpc_url: JSON-RPC endpoint
            timeout: Per-request timeout in seconds
            client: Shared httpx client (one per call is created if None)
        """
        if not rpc_url:
            raise ValueError("RPC URL is required")

        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(self.rpc_url, json=payload)

    async def call(self, method: str, params: list) -> Any:
        """Perform one JSON-RPC call and return its result.

        Raises:
            ChainClientError: On transport failure, HTTP error, timeout or RPC error
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            if self._client is not None:
                response = await asyncio.wait_for(
                    self._post(self._client, payload), timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._post(client, payload)
            response.raise_for_status()
            data = response.json()
        except asyncio.TimeoutError as e:
            raise ChainClientError(f"{method} timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            logger.error(f"RPC transport error on {method}: {e}")
            raise ChainClientError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise ChainClientError(f"{method} returned invalid JSON") from e

        if data.get("error"):
            error = data["error"]
            message = error.get("message", "unknown error")
            logger.error(f"RPC error on {method}: {message}")
            raise ChainClientError(f"{method}: {message}", code=error.get("code"))

        if "result" not in data:
            raise ChainClientError(f"{method} returned no result")

        return data["result"]

    async def _call_quantity(self, method: str, params: list) -> int:
        result = await self.call(method, params)
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise ChainClientError(f"{method} returned non-numeric result {result!r}") from e

    async def get_pending_nonce(self, address: str) -> int:
        """Get transaction count (nonce) for address, including pending txs."""
        return await self._call_quantity("eth_getTransactionCount", [address, "pending"])

    async def gas_price(self) -> int:
        """Get current gas price in wei."""
        return await self._call_quantity("eth_gasPrice", [])

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        """Estimate gas for a transaction."""
        return await self._call_quantity("eth_estimateGas", [_rpc_tx(tx)])

    async def chain_id(self) -> int:
        """Get the chain ID served by the endpoint."""
        return await self._call_quantity("eth_chainId", [])

    async def broadcast(self, raw_tx: bytes) -> str:
        """Broadcast raw transaction and return its hash."""
        raw_tx_hex = "0x" + bytes(raw_tx).hex()
        tx_hash = await self.call("eth_sendRawTransaction", [raw_tx_hex])
        logger.info(f"Broadcast transaction {tx_hash}")
        return tx_hash
