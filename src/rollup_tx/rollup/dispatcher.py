"""Rollup call dispatcher.

Routes each RollupOperationRequest to its contract entry point and returns
the transaction hash. The dispatcher's job ends when the node accepts the
broadcast; confirmation tracking and retries belong to the caller.

Submission flow:
1. Resolve signer (signing.factory)
2. Build TransactionOptions (transact.options)
3. Sign and broadcast through the RollupContract
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from rollup_tx.errors import CallFailed
from rollup_tx.rollup.contract import RollupContract, TransactionHandle
from rollup_tx.rollup.types import (
    ActivateDesertMode,
    CancelOutstandingDeposits,
    CommitBlockInfo,
    CommitBlocks,
    PerformDesert,
    PerformDesertNft,
    RevertBlocks,
    RollupOperationRequest,
    StoredBlockInfo,
    VerifyAndExecuteBlockInfo,
    VerifyAndExecuteBlocks,
    WithdrawPendingBalance,
    WithdrawPendingNFTBalance,
)
from rollup_tx.signing.base import SignerBackend
from rollup_tx.transact.options import OptionsBuilder, TransactionOptions, TxType
from rollup_tx.utils.locks import DEFAULT_LOCK_TIMEOUT, nonce_lock

logger = logging.getLogger(__name__)

Handler = Callable[[RollupContract, TransactionOptions, Any], Awaitable[TransactionHandle]]

_HANDLERS: dict[type, Handler] = {
    CommitBlocks: lambda c, o, r: c.commit_blocks(o, r.last_block, r.new_blocks),
    VerifyAndExecuteBlocks: lambda c, o, r: c.verify_and_execute_blocks(o, r.blocks, r.proofs),
    RevertBlocks: lambda c, o, r: c.revert_blocks(o, r.blocks),
    PerformDesert: lambda c, o, r: c.perform_desert(
        o,
        r.stored_block_info,
        r.nft_root,
        r.asset_exit_data,
        r.account_exit_data,
        r.asset_merkle_proof,
        r.account_merkle_proof,
    ),
    PerformDesertNft: lambda c, o, r: c.perform_desert_nft(
        o,
        r.stored_block_info,
        r.asset_root,
        r.account_exit_data,
        r.exit_nfts,
        r.account_merkle_proof,
        r.nft_merkle_proofs,
    ),
    WithdrawPendingBalance: lambda c, o, r: c.withdraw_pending_balance(
        o, r.owner, r.token, r.amount
    ),
    WithdrawPendingNFTBalance: lambda c, o, r: c.withdraw_pending_nft_balance(o, r.nft_index),
    CancelOutstandingDeposits: lambda c, o, r: c.cancel_outstanding_deposits_for_desert_mode(
        o, r.n, r.deposits_pub_data
    ),
    ActivateDesertMode: lambda c, o, r: c.activate_desert_mode(o),
}


def _make_request(request_type: type, *payload) -> RollupOperationRequest:
    """Build a request, reporting malformed payloads as CallFailed."""
    try:
        return request_type(*payload)
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid {request_type.operation} payload: {e}")
        raise CallFailed(request_type.operation, str(e)) from e


class RollupDispatcher:
    """Submits rollup operations through a RollupContract.

    ``submit`` takes ready-made options. The per-operation helpers also
    build the options: with ``nonce=None`` they fetch the pending nonce and
    hold the signer's address lock until broadcast; with an explicit nonce
    they skip both, and the caller is responsible for nonce allocation.
    """

    def __init__(
        self,
        contract: RollupContract,
        builder: Optional[OptionsBuilder] = None,
        timeout: Optional[float] = None,
        lock_timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT,
    ):
        """Initialize dispatcher.

        Args:
            contract: Rollup contract capability
            builder: Options builder used by the per-operation helpers
            timeout: Upper bound for one encode/sign/broadcast (seconds)
            lock_timeout: Wait limit for the address lock on the auto-nonce path
        """
        self.contract = contract
        self.builder = builder
        self.timeout = timeout
        self.lock_timeout = lock_timeout

    async def submit(self, options: TransactionOptions, request: RollupOperationRequest) -> str:
        """Submit one rollup operation.

        Returns:
            Hash of the broadcast transaction

        Raises:
            CallFailed: On any encoding, signing or broadcast error
        """
        operation = getattr(request, "operation", type(request).__name__)
        handler = _HANDLERS.get(type(request))
        if handler is None:
            raise CallFailed(operation, f"unsupported request type {type(request).__name__}")

        try:
            tx = await asyncio.wait_for(
                handler(self.contract, options, request), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"{operation} timed out after {self.timeout}s")
            raise CallFailed(operation, f"timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"{operation} failed for {options.from_address}: {e}")
            raise CallFailed(operation, str(e) or e.__class__.__name__) from e

        return tx.hash

    async def _build_and_submit(
        self,
        signer: SignerBackend,
        chain_id: int,
        request: RollupOperationRequest,
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int],
        tx_type: TxType,
    ) -> str:
        if self.builder is None:
            raise RuntimeError("RollupDispatcher needs an OptionsBuilder to build options")

        if nonce is not None:
            options = await self.builder.build(
                signer, chain_id, gas_price, gas_limit, nonce=nonce, tx_type=tx_type
            )
            return await self.submit(options, request)

        async with nonce_lock(
            signer.address, timeout=self.lock_timeout, operation=request.operation
        ):
            options = await self.builder.build(
                signer, chain_id, gas_price, gas_limit, tx_type=tx_type
            )
            return await self.submit(options, request)

    async def commit_blocks(
        self,
        signer: SignerBackend,
        chain_id: int,
        last_block: StoredBlockInfo,
        new_blocks: Sequence[CommitBlockInfo],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        """Commit new blocks on top of ``last_block``."""
        return await self._build_and_submit(
            signer, chain_id, CommitBlocks(last_block, new_blocks),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def verify_and_execute_blocks(
        self,
        signer: SignerBackend,
        chain_id: int,
        blocks: Sequence[VerifyAndExecuteBlockInfo],
        proofs: Sequence[int],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        """Verify and execute committed blocks."""
        return await self._build_and_submit(
            signer, chain_id, VerifyAndExecuteBlocks(blocks, proofs),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def revert_blocks(
        self,
        signer: SignerBackend,
        chain_id: int,
        blocks: Sequence[StoredBlockInfo],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        """Revert committed but not yet executed blocks."""
        return await self._build_and_submit(
            signer, chain_id, RevertBlocks(blocks),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def perform_desert(
        self,
        signer: SignerBackend,
        chain_id: int,
        stored_block_info: StoredBlockInfo,
        nft_root: int,
        asset_exit_data: Any,
        account_exit_data: Any,
        asset_merkle_proof: Sequence[int],
        account_merkle_proof: Sequence[int],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        request = _make_request(
            PerformDesert,
            stored_block_info,
            nft_root,
            asset_exit_data,
            account_exit_data,
            asset_merkle_proof,
            account_merkle_proof,
        )
        return await self._build_and_submit(
            signer, chain_id, request, gas_price, gas_limit, nonce, tx_type
        )

    async def perform_desert_nft(
        self,
        signer: SignerBackend,
        chain_id: int,
        stored_block_info: StoredBlockInfo,
        asset_root: int,
        account_exit_data: Any,
        exit_nfts: Sequence[Any],
        account_merkle_proof: Sequence[int],
        nft_merkle_proofs: Sequence[Sequence[int]],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        request = _make_request(
            PerformDesertNft,
            stored_block_info,
            asset_root,
            account_exit_data,
            exit_nfts,
            account_merkle_proof,
            nft_merkle_proofs,
        )
        return await self._build_and_submit(
            signer, chain_id, request, gas_price, gas_limit, nonce, tx_type
        )

    async def withdraw_pending_balance(
        self,
        signer: SignerBackend,
        chain_id: int,
        owner: str,
        token: str,
        amount: int,
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        return await self._build_and_submit(
            signer, chain_id, WithdrawPendingBalance(owner, token, amount),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def withdraw_pending_nft_balance(
        self,
        signer: SignerBackend,
        chain_id: int,
        nft_index: int,
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        return await self._build_and_submit(
            signer, chain_id, WithdrawPendingNFTBalance(nft_index),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def cancel_outstanding_deposits(
        self,
        signer: SignerBackend,
        chain_id: int,
        n: int,
        deposits_pub_data: Sequence[bytes],
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        return await self._build_and_submit(
            signer, chain_id, CancelOutstandingDeposits(n, deposits_pub_data),
            gas_price, gas_limit, nonce, tx_type,
        )

    async def activate_desert_mode(
        self,
        signer: SignerBackend,
        chain_id: int,
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
    ) -> str:
        return await self._build_and_submit(
            signer, chain_id, ActivateDesertMode(),
            gas_price, gas_limit, nonce, tx_type,
        )
