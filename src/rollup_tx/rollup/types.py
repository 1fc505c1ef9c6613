"""Rollup operation requests and block payloads.

Each request maps 1:1 to one rollup contract entry point. Payloads are
passed through to the ABI encoder; only the fixed Merkle proof lengths are
checked here.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Sequence, Union

ASSET_MERKLE_PROOF_LENGTH = 16
ACCOUNT_MERKLE_PROOF_LENGTH = 32
NFT_MERKLE_PROOF_LENGTH = 40


def _check_proof(name: str, proof: Sequence[int], length: int) -> tuple[int, ...]:
    proof = tuple(proof)
    if len(proof) != length:
        raise ValueError(f"{name} must have {length} elements, got {len(proof)}")
    return proof


@dataclass(frozen=True)
class StoredBlockInfo:
    """Block header as stored by the rollup contract."""
    block_size: int
    block_number: int
    priority_operations: int
    pending_onchain_operations_hash: bytes
    timestamp: int
    state_root: bytes
    commitment: bytes

    def to_abi(self) -> tuple:
        return (
            self.block_size,
            self.block_number,
            self.priority_operations,
            self.pending_onchain_operations_hash,
            self.timestamp,
            self.state_root,
            self.commitment,
        )


@dataclass(frozen=True)
class CommitBlockInfo:
    """New block data submitted by commitBlocks."""
    new_state_root: bytes
    public_data: bytes
    timestamp: int
    public_data_offsets: Sequence[int]
    block_number: int
    block_size: int

    def to_abi(self) -> tuple:
        return (
            self.new_state_root,
            self.public_data,
            self.timestamp,
            list(self.public_data_offsets),
            self.block_number,
            self.block_size,
        )


@dataclass(frozen=True)
class VerifyAndExecuteBlockInfo:
    """Committed block header plus the pubdata of its on-chain operations."""
    block_header: StoredBlockInfo
    pending_onchain_ops_pub_data: Sequence[bytes]

    def to_abi(self) -> tuple:
        return (self.block_header.to_abi(), list(self.pending_onchain_ops_pub_data))


@dataclass(frozen=True)
class CommitBlocks:
    operation: ClassVar[str] = "commitBlocks"

    last_block: StoredBlockInfo
    new_blocks: Sequence[CommitBlockInfo]


@dataclass(frozen=True)
class VerifyAndExecuteBlocks:
    operation: ClassVar[str] = "verifyAndExecuteBlocks"

    blocks: Sequence[VerifyAndExecuteBlockInfo]
    proofs: Sequence[int]


@dataclass(frozen=True)
class RevertBlocks:
    operation: ClassVar[str] = "revertBlocks"

    blocks: Sequence[StoredBlockInfo]


@dataclass(frozen=True)
class PerformDesert:
    """Exit one asset of one account while the rollup is in desert mode.

    Exit data structs are ABI tuples, passed through unchanged.
    """
    operation: ClassVar[str] = "performDesert"

    stored_block_info: StoredBlockInfo
    nft_root: int
    asset_exit_data: Any
    account_exit_data: Any
    asset_merkle_proof: Sequence[int]
    account_merkle_proof: Sequence[int]

    def __post_init__(self):
        object.__setattr__(
            self,
            "asset_merkle_proof",
            _check_proof("asset_merkle_proof", self.asset_merkle_proof, ASSET_MERKLE_PROOF_LENGTH),
        )
        object.__setattr__(
            self,
            "account_merkle_proof",
            _check_proof(
                "account_merkle_proof", self.account_merkle_proof, ACCOUNT_MERKLE_PROOF_LENGTH
            ),
        )


@dataclass(frozen=True)
class PerformDesertNft:
    """Exit NFTs of one account while the rollup is in desert mode."""
    operation: ClassVar[str] = "performDesertNft"

    stored_block_info: StoredBlockInfo
    asset_root: int
    account_exit_data: Any
    exit_nfts: Sequence[Any]
    account_merkle_proof: Sequence[int]
    nft_merkle_proofs: Sequence[Sequence[int]]

    def __post_init__(self):
        object.__setattr__(
            self,
            "account_merkle_proof",
            _check_proof(
                "account_merkle_proof", self.account_merkle_proof, ACCOUNT_MERKLE_PROOF_LENGTH
            ),
        )
        object.__setattr__(
            self,
            "nft_merkle_proofs",
            tuple(
                _check_proof(f"nft_merkle_proofs[{i}]", proof, NFT_MERKLE_PROOF_LENGTH)
                for i, proof in enumerate(self.nft_merkle_proofs)
            ),
        )
        if len(self.nft_merkle_proofs) != len(self.exit_nfts):
            raise ValueError("nft_merkle_proofs must have one proof per exit NFT")


@dataclass(frozen=True)
class WithdrawPendingBalance:
    operation: ClassVar[str] = "withdrawPendingBalance"

    owner: str
    token: str
    amount: int


@dataclass(frozen=True)
class WithdrawPendingNFTBalance:
    operation: ClassVar[str] = "withdrawPendingNFTBalance"

    nft_index: int


@dataclass(frozen=True)
class CancelOutstandingDeposits:
    """Cancel up to ``n`` outstanding priority deposits once desert mode is on."""
    operation: ClassVar[str] = "cancelOutstandingDepositsForDesertMode"

    n: int
    deposits_pub_data: Sequence[bytes]


@dataclass(frozen=True)
class ActivateDesertMode:
    operation: ClassVar[str] = "activateDesertMode"


RollupOperationRequest = Union[
    CommitBlocks,
    VerifyAndExecuteBlocks,
    RevertBlocks,
    PerformDesert,
    PerformDesertNft,
    WithdrawPendingBalance,
    WithdrawPendingNFTBalance,
    CancelOutstandingDeposits,
    ActivateDesertMode,
]
