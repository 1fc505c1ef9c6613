"""Chain RPC access."""

from rollup_tx.chain.client import ChainClient, JsonRpcChainClient

__all__ = ["ChainClient", "JsonRpcChainClient"]
