"""Rollup contract calls and their dispatcher."""

from rollup_tx.rollup.contract import (
    RollupContract,
    TransactionHandle,
    Web3RollupContract,
    load_rollup_contract,
)
from rollup_tx.rollup.dispatcher import RollupDispatcher
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

__all__ = [
    "ActivateDesertMode",
    "CancelOutstandingDeposits",
    "CommitBlockInfo",
    "CommitBlocks",
    "PerformDesert",
    "PerformDesertNft",
    "RevertBlocks",
    "RollupContract",
    "RollupDispatcher",
    "RollupOperationRequest",
    "StoredBlockInfo",
    "TransactionHandle",
    "VerifyAndExecuteBlockInfo",
    "VerifyAndExecuteBlocks",
    "Web3RollupContract",
    "WithdrawPendingBalance",
    "WithdrawPendingNFTBalance",
    "load_rollup_contract",
]
