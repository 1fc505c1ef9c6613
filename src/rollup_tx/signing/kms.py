"""AWS KMS signing backend.

Uses AWS Key Management Service for secure key storage and signing.
KMS keys never leave AWS - signing happens in the cloud.

Setup:
1. Create an asymmetric key in AWS KMS (ECC_SECG_P256K1, SIGN_VERIFY)
2. Set KMS_KEY_ID (and optionally KMS_ADDRESS) environment variables
3. Configure AWS credentials (IAM role, access keys, etc.)

KMS returns a DER-encoded (r, s) pair with no recovery id. The signer
normalizes s to the low half of the curve order and finds the recovery id
by recovering the address for each candidate.

Reference:
- https://docs.aws.amazon.com/kms/latest/APIReference/API_Sign.html
"""

import asyncio
import logging
import os
from typing import Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PublicFormat,
    load_der_public_key,
)
from eth_keys import keys

from rollup_tx.errors import (
    KeyResolutionFailed,
    RecoveryMismatchError,
    SigningFailed,
    SigningTimeoutError,
)
from rollup_tx.signing.base import (
    SECP256K1_N,
    SignatureTriple,
    SignerBackend,
    SignerType,
    normalize_s,
    recover_address,
    validate_digest,
)

logger = logging.getLogger(__name__)

DEFAULT_KMS_TIMEOUT = 10.0


class RemoteKeyService(Protocol):
    """Subset of KMS operations the signer needs."""

    async def sign(self, key_id: str, digest: bytes, timeout: Optional[float] = None) -> bytes:
        """Sign ``digest`` with ``key_id`` and return the DER-encoded signature."""
        ...

    async def get_public_key(self, key_id: str, timeout: Optional[float] = None) -> bytes:
        """Return the DER-encoded SubjectPublicKeyInfo of ``key_id``."""
        ...


class BotoKMSService:
    """RemoteKeyService backed by a boto3 KMS client.

    boto3 is blocking, so calls run in the default executor and are bounded
    by ``asyncio.wait_for``.
    """

    def __init__(self, region: Optional[str] = None, client=None):
        """Initialize KMS service.

        Args:
            region: AWS region (defaults to AWS_DEFAULT_REGION or us-east-1)
            client: Preconfigured boto3 KMS client (created lazily if None)
        """
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", "us-east-1")
        self._client = client

    @property
    def client(self):
        """Lazily create the boto3 KMS client."""
        if self._client is None:
            import boto3
            self._client = boto3.client("kms", region_name=self.region)
        return self._client

    async def _run(self, call, timeout: Optional[float]):
        loop = asyncio.get_event_loop()
        return await asyncio.wait_for(loop.run_in_executor(None, call), timeout=timeout)

    async def sign(self, key_id: str, digest: bytes, timeout: Optional[float] = None) -> bytes:
        response = await self._run(
            lambda: self.client.sign(
                KeyId=key_id,
                Message=digest,
                MessageType="DIGEST",
                SigningAlgorithm="ECDSA_SHA_256",
            ),
            timeout,
        )
        return response["Signature"]

    async def get_public_key(self, key_id: str, timeout: Optional[float] = None) -> bytes:
        response = await self._run(
            lambda: self.client.get_public_key(KeyId=key_id),
            timeout,
        )
        return response["PublicKey"]


def describe_kms_error(error: Exception) -> str:
    """Human-readable message for a KMS failure."""
    if isinstance(error, ClientError):
        error_code = error.response.get("Error", {}).get("Code", "Unknown")
        if error_code == "AccessDeniedException":
            return "Access denied to KMS key. Check IAM permissions."
        if error_code == "NotFoundException":
            return "KMS key not found. Check key ID/ARN."
        if error_code == "DisabledException":
            return "KMS key is disabled."
    return str(error) or error.__class__.__name__


def parse_der_signature(der_signature: bytes) -> tuple[int, int]:
    """Parse DER-encoded ECDSA signature into r and s integers.

    DER format: 0x30 [total-length] 0x02 [r-length] [r] 0x02 [s-length] [s]

    Raises:
        SigningFailed: If the encoding is malformed or r/s are out of range
    """
    try:
        r, s = decode_dss_signature(bytes(der_signature))
    except (ValueError, TypeError) as e:
        raise SigningFailed(f"Malformed DER signature from KMS: {e}") from e

    if not (0 < r < SECP256K1_N and 0 < s < SECP256K1_N):
        raise SigningFailed("KMS signature components out of range")
    return r, s


def parse_der_public_key(der_key: bytes) -> bytes:
    """Parse DER-encoded public key to raw format.

    For secp256k1, returns 64-byte uncompressed public key (without 0x04 prefix).
    """
    public_key = load_der_public_key(der_key)
    if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(
        public_key.curve, ec.SECP256K1
    ):
        raise ValueError("KMS key is not a secp256k1 key")

    raw = public_key.public_bytes(Encoding.X962, PublicFormat.UncompressedPoint)
    return raw[1:]  # Remove 0x04 prefix


def address_from_public_key(raw_public_key: bytes) -> str:
    """Ethereum address: last 20 bytes of keccak256(public_key), checksummed."""
    return keys.PublicKey(raw_public_key).to_checksum_address()


def find_recovery_id(message_hash: bytes, r: int, s: int, expected_address: str) -> int:
    """Find the recovery id that makes (r, s) recover to ``expected_address``.

    Tries 0 then 1; never more than two attempts.

    Raises:
        RecoveryMismatchError: If neither candidate recovers the address
    """
    expected = expected_address.lower()
    for recovery_id in (0, 1):
        recovered = recover_address(message_hash, r, s, recovery_id)
        if recovered is not None and recovered.lower() == expected:
            return recovery_id

    raise RecoveryMismatchError(
        f"Signature does not recover to {expected_address} with either recovery id"
    )


class KMSSigner(SignerBackend):
    """AWS KMS signing backend.

    Keys are identified by:
    - AWS KMS Key ID (e.g., "1234abcd-12ab-34cd-56ef-1234567890ab")
    - AWS KMS Key ARN
    - AWS KMS Key Alias (e.g., "alias/my-signing-key")

    The address must be known up front; ``signing.factory.load_kms_signer``
    resolves it from the KMS public key when it is not configured.
    """

    def __init__(
        self,
        key_id: str,
        address: str,
        service: RemoteKeyService,
        timeout: float = DEFAULT_KMS_TIMEOUT,
    ):
        super().__init__(SignerType.KMS, address, key_id=key_id)
        self.key_id = key_id
        self.timeout = timeout
        self._service = service

    async def sign(self, message_hash: bytes, timeout: Optional[float] = None) -> SignatureTriple:
        """Sign message hash using AWS KMS."""
        digest = validate_digest(message_hash)
        timeout = self.timeout if timeout is None else timeout

        try:
            der_signature = await asyncio.wait_for(
                self._service.sign(self.key_id, digest, timeout=timeout), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"KMS signing timed out after {timeout}s for key {self.key_id}")
            raise SigningTimeoutError(f"KMS sign timed out after {timeout}s") from e
        except (ClientError, BotoCoreError) as e:
            logger.error(f"KMS signing error: {e}")
            raise SigningFailed(describe_kms_error(e)) from e
        except Exception as e:
            logger.error(f"KMS signing failed: {e}")
            raise SigningFailed(f"KMS signing failed: {e}") from e

        r, s = parse_der_signature(der_signature)
        s = normalize_s(s)
        recovery_id = find_recovery_id(digest, r, s, self.address)

        logger.debug(f"KMS signature for {self.address} uses recovery id {recovery_id}")
        return SignatureTriple(r=r, s=s, recovery_id=recovery_id)

    async def health_check(self) -> bool:
        """Check if the KMS key is reachable."""
        try:
            await self._service.get_public_key(self.key_id, timeout=self.timeout)
            return True
        except Exception as e:
            logger.warning(f"KMS health check failed: {e}")
            return False


async def fetch_kms_address(
    service: RemoteKeyService,
    key_id: str,
    timeout: float = DEFAULT_KMS_TIMEOUT,
) -> str:
    """Derive the chain address of a KMS key with one GetPublicKey call.

    Raises:
        KeyResolutionFailed: If the lookup fails or the key is not secp256k1
    """
    try:
        der_public_key = await asyncio.wait_for(
            service.get_public_key(key_id, timeout=timeout), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise KeyResolutionFailed(f"KMS GetPublicKey timed out after {timeout}s") from e
    except Exception as e:
        logger.error(f"Failed to get KMS public key: {e}")
        raise KeyResolutionFailed(describe_kms_error(e)) from e

    try:
        raw_public_key = parse_der_public_key(der_public_key)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyResolutionFailed(f"Cannot parse KMS public key: {e}") from e

    return address_from_public_key(raw_public_key)
