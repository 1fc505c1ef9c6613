"""Signer factory.

Resolves the operator's signing identity: either a local private key or a
reference to an AWS KMS key. The backend is chosen once here; signing
calls never branch on the backend type afterwards.
"""

import logging
import re
from typing import Optional

from eth_keys import keys
from eth_utils import is_address, to_checksum_address

from rollup_tx.config import Settings, get_settings
from rollup_tx.errors import InvalidKeyMaterial, KeyResolutionFailed
from rollup_tx.signing.base import SECP256K1_N, SignerBackend, SignerType
from rollup_tx.signing.kms import (
    DEFAULT_KMS_TIMEOUT,
    BotoKMSService,
    KMSSigner,
    RemoteKeyService,
    fetch_kms_address,
)
from rollup_tx.signing.local import LocalSigner

logger = logging.getLogger(__name__)

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def decode_private_key(private_key_hex: str) -> keys.PrivateKey:
    """Decode and validate a hex private key.

    Args:
        private_key_hex: 32-byte key as hex, with or without 0x prefix

    Raises:
        InvalidKeyMaterial: If the string is not a valid secp256k1 scalar
    """
    if not isinstance(private_key_hex, str):
        raise InvalidKeyMaterial("Private key must be a hex string")

    value = private_key_hex.strip()
    if value[:2].lower() == "0x":
        value = value[2:]

    if not _HEX_KEY.match(value):
        raise InvalidKeyMaterial("Private key must be 32 bytes of hex")

    scalar = int(value, 16)
    if not 0 < scalar < SECP256K1_N:
        raise InvalidKeyMaterial("Private key is outside the secp256k1 range")

    return keys.PrivateKey(bytes.fromhex(value))


def load_local_signer(private_key_hex: str) -> LocalSigner:
    """Resolve a local signing identity from a hex private key."""
    signer = LocalSigner(decode_private_key(private_key_hex))
    logger.info(f"Loaded local signer for {signer.address}")
    return signer


async def load_kms_signer(
    key_id: str,
    service: Optional[RemoteKeyService] = None,
    address: Optional[str] = None,
    timeout: float = DEFAULT_KMS_TIMEOUT,
) -> KMSSigner:
    """Resolve a KMS signing identity.

    Args:
        key_id: KMS key ID, ARN or alias
        service: KMS service (boto3-backed by default)
        address: Known address of the key; fetched from KMS if omitted
        timeout: Timeout for the public key lookup and later signing calls

    Raises:
        KeyResolutionFailed: If the key cannot be resolved
    """
    if not key_id:
        raise KeyResolutionFailed("No KMS key ID configured")

    service = service or BotoKMSService()

    if address:
        if not is_address(address):
            raise KeyResolutionFailed(f"Invalid KMS key address: {address}")
        address = to_checksum_address(address)
    else:
        address = await fetch_kms_address(service, key_id, timeout=timeout)

    logger.info(f"Loaded KMS signer {key_id} for {address}")
    return KMSSigner(key_id=key_id, address=address, service=service, timeout=timeout)


def get_signer_type(settings: Settings) -> SignerType:
    """Determine which signer to use.

    Priority:
    1. SIGNER_BACKEND setting (explicit)
    2. KMS_KEY_ID present -> KMS
    3. Default to Local
    """
    explicit = settings.signer_backend.lower()

    if explicit:
        try:
            return SignerType(explicit)
        except ValueError as e:
            raise KeyResolutionFailed(f"Unknown signer backend: {settings.signer_backend}") from e

    if settings.has_kms_key:
        return SignerType.KMS

    return SignerType.LOCAL


async def create_signer(
    settings: Optional[Settings] = None,
    service: Optional[RemoteKeyService] = None,
) -> SignerBackend:
    """Create the configured signer.

    Raises:
        InvalidKeyMaterial: If the local key is missing or invalid
        KeyResolutionFailed: If the KMS key cannot be resolved
    """
    settings = settings or get_settings()
    signer_type = get_signer_type(settings)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.KMS:
        return await load_kms_signer(
            settings.kms_key_id or "",
            service=service or BotoKMSService(region=settings.aws_region),
            address=settings.kms_address,
            timeout=settings.kms_timeout,
        )

    if not settings.has_local_key:
        raise InvalidKeyMaterial("OPERATOR_PRIVATE_KEY is not set")
    return load_local_signer(settings.operator_private_key)
