"""Rollup contract capability.

``RollupContract`` is the interface the dispatcher calls: one coroutine
per rollup entry point, taking transaction options plus the payload and
returning a handle of the broadcast transaction.

``Web3RollupContract`` implements it with web3 ABI encoding, the signed
envelope from ``rollup_tx.transact`` and a ChainClient for broadcast.
"""

import dataclasses
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol, Sequence, Union

from web3 import Web3

from rollup_tx.chain.client import ChainClient
from rollup_tx.rollup.types import (
    CommitBlockInfo,
    StoredBlockInfo,
    VerifyAndExecuteBlockInfo,
)
from rollup_tx.transact.envelope import build_transaction, sign_transaction
from rollup_tx.transact.options import TransactionOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionHandle:
    """Broadcast transaction."""
    hash: str
    nonce: int
    raw_transaction: bytes = b""


class RollupContract(Protocol):
    """Typed rollup contract calls."""

    async def commit_blocks(
        self,
        options: TransactionOptions,
        last_block: StoredBlockInfo,
        new_blocks: Sequence[CommitBlockInfo],
    ) -> TransactionHandle:
        ...

    async def verify_and_execute_blocks(
        self,
        options: TransactionOptions,
        blocks: Sequence[VerifyAndExecuteBlockInfo],
        proofs: Sequence[int],
    ) -> TransactionHandle:
        ...

    async def revert_blocks(
        self, options: TransactionOptions, blocks: Sequence[StoredBlockInfo]
    ) -> TransactionHandle:
        ...

    async def perform_desert(
        self,
        options: TransactionOptions,
        stored_block_info: StoredBlockInfo,
        nft_root: int,
        asset_exit_data: Any,
        account_exit_data: Any,
        asset_merkle_proof: Sequence[int],
        account_merkle_proof: Sequence[int],
    ) -> TransactionHandle:
        ...

    async def perform_desert_nft(
        self,
        options: TransactionOptions,
        stored_block_info: StoredBlockInfo,
        asset_root: int,
        account_exit_data: Any,
        exit_nfts: Sequence[Any],
        account_merkle_proof: Sequence[int],
        nft_merkle_proofs: Sequence[Sequence[int]],
    ) -> TransactionHandle:
        ...

    async def withdraw_pending_balance(
        self, options: TransactionOptions, owner: str, token: str, amount: int
    ) -> TransactionHandle:
        ...

    async def withdraw_pending_nft_balance(
        self, options: TransactionOptions, nft_index: int
    ) -> TransactionHandle:
        ...

    async def cancel_outstanding_deposits_for_desert_mode(
        self, options: TransactionOptions, n: int, deposits_pub_data: Sequence[bytes]
    ) -> TransactionHandle:
        ...

    async def activate_desert_mode(self, options: TransactionOptions) -> TransactionHandle:
        ...


class Web3RollupContract:
    """RollupContract backed by a JSON ABI.

    Call data is encoded locally; no provider is attached to the web3
    instance. Nonce lookups, gas queries and broadcast all go through the
    ChainClient.
    """

    def __init__(
        self,
        address: str,
        abi: list[dict[str, Any]],
        chain_client: ChainClient,
        sign_timeout: Optional[float] = None,
    ):
        """Initialize the contract.

        Args:
            address: Rollup contract address
            abi: Contract ABI
            chain_client: Client for gas queries and broadcast
            sign_timeout: Bound for remote signing (seconds)
        """
        if not Web3.is_address(address):
            raise ValueError(f"Invalid rollup contract address: {address}")

        self.address = Web3.to_checksum_address(address)
        self.chain_client = chain_client
        self.sign_timeout = sign_timeout
        self._contract = Web3().eth.contract(address=self.address, abi=abi)

    def encode_call(self, function_name: str, *args) -> str:
        """ABI-encode a call to ``function_name``."""
        return self._contract.encode_abi(function_name, args=list(args))

    async def _resolve_gas(self, options: TransactionOptions, data: str) -> TransactionOptions:
        gas_price = options.gas_price
        if gas_price is None:
            gas_price = await self.chain_client.gas_price()
            logger.debug(f"Using network gas price {gas_price}")

        gas_limit = options.gas_limit
        if gas_limit is None:
            gas_limit = await self.chain_client.estimate_gas({
                "from": options.from_address,
                "to": self.address,
                "data": data,
                "value": 0,
            })
            logger.debug(f"Estimated gas limit {gas_limit}")

        return dataclasses.replace(options, gas_price=gas_price, gas_limit=gas_limit)

    async def _transact(
        self, options: TransactionOptions, function_name: str, *args
    ) -> TransactionHandle:
        data = self.encode_call(function_name, *args)
        resolved = await self._resolve_gas(options, data)

        tx = build_transaction(resolved, self.address, data)
        signed = await sign_transaction(tx, options.signer, timeout=self.sign_timeout)

        tx_hash = await self.chain_client.broadcast(signed.raw_transaction)
        logger.info(
            f"{function_name} sent from {options.from_address} "
            f"(nonce {options.nonce}, gas {resolved.gas_limit} @ {resolved.gas_price}): {tx_hash}"
        )
        return TransactionHandle(
            hash=tx_hash or signed.hash,
            nonce=options.nonce,
            raw_transaction=signed.raw_transaction,
        )

    async def commit_blocks(self, options, last_block, new_blocks):
        return await self._transact(
            options,
            "commitBlocks",
            last_block.to_abi(),
            [block.to_abi() for block in new_blocks],
        )

    async def verify_and_execute_blocks(self, options, blocks, proofs):
        return await self._transact(
            options,
            "verifyAndExecuteBlocks",
            [block.to_abi() for block in blocks],
            list(proofs),
        )

    async def revert_blocks(self, options, blocks):
        return await self._transact(
            options, "revertBlocks", [block.to_abi() for block in blocks]
        )

    async def perform_desert(
        self,
        options,
        stored_block_info,
        nft_root,
        asset_exit_data,
        account_exit_data,
        asset_merkle_proof,
        account_merkle_proof,
    ):
        return await self._transact(
            options,
            "performDesert",
            stored_block_info.to_abi(),
            nft_root,
            asset_exit_data,
            account_exit_data,
            list(asset_merkle_proof),
            list(account_merkle_proof),
        )

    async def perform_desert_nft(
        self,
        options,
        stored_block_info,
        asset_root,
        account_exit_data,
        exit_nfts,
        account_merkle_proof,
        nft_merkle_proofs,
    ):
        return await self._transact(
            options,
            "performDesertNft",
            stored_block_info.to_abi(),
            asset_root,
            account_exit_data,
            list(exit_nfts),
            list(account_merkle_proof),
            [list(proof) for proof in nft_merkle_proofs],
        )

    async def withdraw_pending_balance(self, options, owner, token, amount):
        return await self._transact(
            options,
            "withdrawPendingBalance",
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(token),
            amount,
        )

    async def withdraw_pending_nft_balance(self, options, nft_index):
        return await self._transact(options, "withdrawPendingNFTBalance", nft_index)

    async def cancel_outstanding_deposits_for_desert_mode(self, options, n, deposits_pub_data):
        return await self._transact(
            options,
            "cancelOutstandingDepositsForDesertMode",
            n,
            list(deposits_pub_data),
        )

    async def activate_desert_mode(self, options):
        return await self._transact(options, "activateDesertMode")


def load_contract_abi(abi_path: Union[str, Path]) -> list[dict[str, Any]]:
    """Load an ABI from a JSON file.

    Accepts either a compiler artifact ({"abi": [...]}) or a bare ABI list.

    Raises:
        FileNotFoundError: If the file doesn't exist
        json.JSONDecodeError: If the file is invalid JSON
        ValueError: If no ABI list is found
    """
    path = Path(abi_path).expanduser().resolve()
    with path.open() as file:
        data = json.load(file)

    abi = data.get("abi") if isinstance(data, dict) else data
    if not isinstance(abi, list):
        raise ValueError(f"No ABI found in {path}")
    return abi


def load_rollup_contract(
    chain_client: ChainClient,
    address: str,
    abi_path: Union[str, Path],
    sign_timeout: Optional[float] = None,
) -> Web3RollupContract:
    """Load an already deployed rollup contract."""
    return Web3RollupContract(
        address, load_contract_abi(abi_path), chain_client, sign_timeout=sign_timeout
    )
