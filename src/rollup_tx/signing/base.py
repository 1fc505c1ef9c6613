"""Base interfaces for transaction signing.

Signing flow:
1. Build unsigned transaction envelope
2. Hash it (signing hash)
3. Signer returns (r, s, recovery_id), never the raw private key
4. Envelope encodes v for its format and serializes the signed transaction
5. Broadcast signed transaction
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from rollup_tx.errors import SigningFailed

logger = logging.getLogger(__name__)

# secp256k1 group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"           # Private key in memory
    KMS = "kms"               # AWS KMS


@dataclass(frozen=True)
class SigningIdentity:
    """Who signs: chain address plus how the key is reached.

    Attributes:
        address: Checksummed chain address of the key
        signer_type: Backend holding the key
        key_id: KMS key ID/ARN/alias (None for local keys)
    """
    address: str
    signer_type: SignerType
    key_id: Optional[str] = None


@dataclass(frozen=True)
class SignatureTriple:
    """Canonical ECDSA signature over a signing hash.

    Attributes:
        r: R component
        s: S component, always in the lower half of the curve order
        recovery_id: 0 or 1, selects which public key (r, s) recovers to
    """
    r: int
    s: int
    recovery_id: int

    def v_for(self, chain_id: Optional[int]) -> int:
        """Legacy v value.

        For EIP-155, v = chain_id * 2 + 35 + recovery_id
        For pre-EIP-155, v = 27 + recovery_id
        """
        if chain_id is None:
            return 27 + self.recovery_id
        return chain_id * 2 + 35 + self.recovery_id

    def to_bytes(self) -> bytes:
        """65-byte r || s || recovery_id encoding."""
        return (
            self.r.to_bytes(32, "big")
            + self.s.to_bytes(32, "big")
            + bytes([self.recovery_id])
        )


def normalize_s(s: int) -> int:
    """Return the low-s form of ``s``.

    High-s signatures are rejected by the chain as malleable.
    """
    if s > SECP256K1_HALF_N:
        return SECP256K1_N - s
    return s


def canonicalize(r: int, s: int, recovery_id: int) -> SignatureTriple:
    """Build a low-s SignatureTriple, flipping the recovery id along with s."""
    if s > SECP256K1_HALF_N:
        return SignatureTriple(r=r, s=SECP256K1_N - s, recovery_id=recovery_id ^ 1)
    return SignatureTriple(r=r, s=s, recovery_id=recovery_id)


def recover_address(message_hash: bytes, r: int, s: int, recovery_id: int) -> Optional[str]:
    """Recover the checksummed address that produced (r, s, recovery_id).

    Returns None when no valid public key can be recovered for these values.
    """
    try:
        signature = keys.Signature(vrs=(recovery_id, r, s))
        public_key = signature.recover_public_key_from_msg_hash(message_hash)
    except (BadSignature, ValidationError) as e:
        logger.debug(f"Recovery with id {recovery_id} failed: {e}")
        return None
    return public_key.to_checksum_address()


def validate_digest(message_hash: bytes) -> bytes:
    """Ensure the signing hash is a 32-byte digest."""
    if not isinstance(message_hash, (bytes, bytearray)) or len(message_hash) != 32:
        raise SigningFailed("Signing hash must be exactly 32 bytes")
    return bytes(message_hash)


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    A backend is bound to exactly one key at construction and never changes
    afterwards, so one instance can be shared by concurrent signing calls.
    Implementations should NEVER expose raw private keys.
    """

    def __init__(self, signer_type: SignerType, address: str, key_id: Optional[str] = None):
        self.signer_type = signer_type
        self._identity = SigningIdentity(address=address, signer_type=signer_type, key_id=key_id)

    @property
    def identity(self) -> SigningIdentity:
        """Signing identity this backend signs for."""
        return self._identity

    @property
    def address(self) -> str:
        """Checksummed chain address of the signing key."""
        return self._identity.address

    @abstractmethod
    async def sign(self, message_hash: bytes, timeout: Optional[float] = None) -> SignatureTriple:
        """Sign a 32-byte transaction signing hash.

        Args:
            message_hash: Digest to sign
            timeout: Upper bound for remote calls (seconds)

        Returns:
            Canonical SignatureTriple recovering to ``self.address``

        Raises:
            SigningFailed: If no valid signature could be produced
        """
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available.

        Returns:
            True if backend is ready to sign
        """
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value}, address={self.address})"
