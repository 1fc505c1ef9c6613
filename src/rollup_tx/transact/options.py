"""Transaction options: who signs, for which chain, at what nonce and price.

Nonce policy:
- nonce omitted: the pending nonce is fetched from the chain. Two
  concurrent builds for the same address can observe the same nonce, so
  only one auto-nonce submission per address may be in flight (see
  ``rollup_tx.utils.locks``).
- nonce given: used verbatim. The caller owns uniqueness and ordering,
  which lets it prepare a pipeline of submissions without a round trip.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from rollup_tx.chain.client import ChainClient
from rollup_tx.errors import OptionsConstructionFailed
from rollup_tx.signing.base import SignerBackend

logger = logging.getLogger(__name__)

MAX_UINT64 = 2**64 - 1
MAX_UINT256 = 2**256 - 1


class TxType(str, Enum):
    """Transaction envelope format."""
    LEGACY = "legacy"              # EIP-155, v carries the chain id
    ACCESS_LIST = "access_list"    # EIP-2930 typed, v is the raw recovery id


@dataclass(frozen=True)
class TransactionOptions:
    """Everything needed to authorize and price one transaction.

    Built fresh per call and consumed by one dispatch.

    Attributes:
        signer: Signing backend bound to the transaction
        chain_id: Chain ID for replay protection
        nonce: Sender nonce
        gas_price: Gas price in wei (None = ask the chain at broadcast)
        gas_limit: Gas limit (None = estimate at broadcast)
        tx_type: Envelope format
    """
    signer: SignerBackend
    chain_id: int
    nonce: int
    gas_price: Optional[int]
    gas_limit: Optional[int]
    tx_type: TxType = TxType.LEGACY

    @property
    def from_address(self) -> str:
        """Address of the signer."""
        return self.signer.address

    def as_tx_params(self) -> dict[str, Any]:
        """Transaction parameters in web3 field naming (unset fields omitted)."""
        params: dict[str, Any] = {
            "from": self.from_address,
            "chainId": self.chain_id,
            "nonce": self.nonce,
        }
        if self.gas_price is not None:
            params["gasPrice"] = self.gas_price
        if self.gas_limit is not None:
            params["gas"] = self.gas_limit
        return params


def _check_range(name: str, value: Optional[int], low: int, high: int, optional: bool = False):
    if value is None:
        if optional:
            return
        raise OptionsConstructionFailed(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise OptionsConstructionFailed(f"{name} must be an integer, got {type(value).__name__}")
    if not low <= value <= high:
        raise OptionsConstructionFailed(f"{name} {value} out of range [{low}, {high}]")


class OptionsBuilder:
    """Builds TransactionOptions, fetching the nonce when not supplied."""

    def __init__(self, chain_client: ChainClient, timeout: Optional[float] = None):
        """Initialize builder.

        Args:
            chain_client: Client used for pending nonce lookups
            timeout: Default bound for the nonce lookup (seconds)
        """
        self.chain_client = chain_client
        self.timeout = timeout

    async def build(
        self,
        signer: SignerBackend,
        chain_id: int,
        gas_price: Optional[int],
        gas_limit: Optional[int],
        nonce: Optional[int] = None,
        tx_type: TxType = TxType.LEGACY,
        timeout: Optional[float] = None,
    ) -> TransactionOptions:
        """Assemble transaction options.

        Args:
            signer: Resolved signing backend
            chain_id: Chain ID, passed explicitly on every call
            gas_price: Gas price in wei, or None to let the chain decide
            gas_limit: Gas limit, or None to estimate
            nonce: Explicit nonce, or None to fetch the pending nonce
            tx_type: Envelope format
            timeout: Bound for the nonce lookup (overrides the default)

        Raises:
            OptionsConstructionFailed: On invalid input or nonce lookup failure
        """
        _check_range("chain_id", chain_id, 1, MAX_UINT256)
        _check_range("gas_price", gas_price, 0, MAX_UINT256, optional=True)
        _check_range("gas_limit", gas_limit, 1, MAX_UINT64, optional=True)
        if nonce is not None:
            _check_range("nonce", nonce, 0, MAX_UINT64)

        try:
            tx_type = TxType(tx_type)
        except ValueError as e:
            raise OptionsConstructionFailed(f"Unknown transaction type: {tx_type}") from e

        if nonce is None:
            nonce = await self._fetch_nonce(signer.address, timeout)

        return TransactionOptions(
            signer=signer,
            chain_id=chain_id,
            nonce=nonce,
            gas_price=gas_price,
            gas_limit=gas_limit,
            tx_type=tx_type,
        )

    async def _fetch_nonce(self, address: str, timeout: Optional[float]) -> int:
        timeout = self.timeout if timeout is None else timeout
        try:
            nonce = await asyncio.wait_for(
                self.chain_client.get_pending_nonce(address), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Nonce lookup for {address} timed out after {timeout}s")
            raise OptionsConstructionFailed(f"Nonce lookup timed out after {timeout}s") from e
        except Exception as e:
            logger.error(f"Nonce lookup for {address} failed: {e}")
            raise OptionsConstructionFailed(f"Nonce lookup failed: {e}") from e

        _check_range("nonce", nonce, 0, MAX_UINT64)
        logger.debug(f"Fetched pending nonce {nonce} for {address}")
        return nonce
