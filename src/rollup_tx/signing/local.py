"""Local signing backend.

Uses an in-memory private key for signing. Suitable for:
- Development/testing
- Operators without access to KMS

WARNING: The private key is held in memory. Use KMS for production
operator keys.
"""

import logging
from typing import Optional

from eth_keys import keys

from rollup_tx.signing.base import (
    SignatureTriple,
    SignerBackend,
    SignerType,
    canonicalize,
    validate_digest,
)

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Local signing backend using an in-memory secp256k1 key.

    Build it through ``signing.factory.load_local_signer`` so the key is
    validated first.
    """

    def __init__(self, private_key: keys.PrivateKey):
        super().__init__(SignerType.LOCAL, private_key.public_key.to_checksum_address())
        self._private_key = private_key

    @property
    def public_key(self) -> keys.PublicKey:
        """Public key of the held private key."""
        return self._private_key.public_key

    async def sign(self, message_hash: bytes, timeout: Optional[float] = None) -> SignatureTriple:
        """Sign a message hash using the local private key.

        eth_keys derives k deterministically (RFC6979), so signing the same
        hash twice yields the same signature.
        """
        digest = validate_digest(message_hash)
        signature = self._private_key.sign_msg_hash(digest)
        logger.debug(f"Signed {digest.hex()} locally for {self.address}")
        return canonicalize(signature.r, signature.s, signature.v)
