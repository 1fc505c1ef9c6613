"""Signed transaction envelopes.

Serializes the unsigned transaction with eth_account, asks the bound signer
for a signature over its signing hash, and encodes v for the envelope:
- legacy (EIP-155): v = chain_id * 2 + 35 + recovery_id
- typed (EIP-2930): v = recovery_id
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

# Not public API; checked against eth-account 0.14 (see the pin in pyproject.toml)
from eth_account._utils.legacy_transactions import (
    encode_transaction,
    serializable_unsigned_transaction_from_dict,
)
from eth_account.typed_transactions import TypedTransaction
from eth_utils import keccak

from rollup_tx.signing.base import SignatureTriple, SignerBackend
from rollup_tx.transact.options import TransactionOptions, TxType

logger = logging.getLogger(__name__)

ACCESS_LIST_TX_TYPE = 1


@dataclass(frozen=True)
class SignedEnvelope:
    """Signed, serialized transaction ready for broadcast."""
    raw_transaction: bytes
    hash: str
    signature: SignatureTriple


def build_transaction(
    options: TransactionOptions,
    to: str,
    data: str,
    value: int = 0,
) -> dict[str, Any]:
    """Transaction dict for a contract call made with ``options``.

    gasPrice and gas must already be resolved.
    """
    tx: dict[str, Any] = {
        "chainId": options.chain_id,
        "nonce": options.nonce,
        "gasPrice": options.gas_price,
        "gas": options.gas_limit,
        "to": to,
        "value": value,
        "data": data,
    }
    if options.tx_type == TxType.ACCESS_LIST:
        tx["type"] = ACCESS_LIST_TX_TYPE
        tx["accessList"] = []
    return tx


async def sign_transaction(
    tx: dict[str, Any],
    signer: SignerBackend,
    timeout: Optional[float] = None,
) -> SignedEnvelope:
    """Sign a transaction dict with any SignerBackend.

    Args:
        tx: Transaction fields (web3 naming, "from" is ignored)
        signer: Backend whose address becomes the sender
        timeout: Bound for remote signing

    Raises:
        SigningFailed: Propagated from the signer
    """
    fields = {key: value for key, value in tx.items() if key != "from"}
    unsigned = serializable_unsigned_transaction_from_dict(fields)
    signing_hash = unsigned.hash()

    signature = await signer.sign(signing_hash, timeout=timeout)

    if isinstance(unsigned, TypedTransaction):
        v = signature.recovery_id
    else:
        v = signature.v_for(fields.get("chainId"))

    raw_transaction = encode_transaction(unsigned, vrs=(v, signature.r, signature.s))
    tx_hash = "0x" + keccak(raw_transaction).hex()
    logger.debug(f"Signed transaction {tx_hash} from {signer.address} (nonce {fields.get('nonce')})")

    return SignedEnvelope(raw_transaction=raw_transaction, hash=tx_hash, signature=signature)
