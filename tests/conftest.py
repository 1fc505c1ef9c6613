"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import Optional
from unittest.mock import AsyncMock

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_keys import keys
from eth_utils import keccak

# Keep a developer's .env from leaking into tests
os.environ["SIGNER_BACKEND"] = ""
os.environ.pop("KMS_KEY_ID", None)
os.environ.pop("OPERATOR_PRIVATE_KEY", None)

from rollup_tx.signing.base import SECP256K1_N
from rollup_tx.signing.factory import load_local_signer
from rollup_tx.utils.locks import clear_address_locks

# Private key with scalar 1 and its well-known address
SCALAR_ONE_KEY = "0x" + "00" * 31 + "01"
SCALAR_ONE_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"

OTHER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

DIGEST = keccak(b"rollup_tx test digest")


class FakeKMSService:
    """In-memory stand-in for KMS returning DER signatures without recovery id.

    Args:
        private_key_hex: Key the service claims to hold (public key lookups)
        signing_key_hex: Key actually used to sign (simulates a key mismatch)
        high_s: Return the high-s form of every signature
        delay: Seconds to wait before answering
        error: Exception raised by every call
    """

    def __init__(
        self,
        private_key_hex: str = SCALAR_ONE_KEY,
        signing_key_hex: Optional[str] = None,
        high_s: bool = False,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.private_key = keys.PrivateKey(bytes.fromhex(private_key_hex[2:]))
        self.signing_key = (
            keys.PrivateKey(bytes.fromhex(signing_key_hex[2:]))
            if signing_key_hex
            else self.private_key
        )
        self.high_s = high_s
        self.delay = delay
        self.error = error
        self.sign_calls = 0
        self.public_key_calls = 0

    async def sign(self, key_id: str, digest: bytes, timeout: Optional[float] = None) -> bytes:
        self.sign_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

        signature = self.signing_key.sign_msg_hash(digest)
        s = SECP256K1_N - signature.s if self.high_s else signature.s
        return encode_dss_signature(signature.r, s)

    async def get_public_key(self, key_id: str, timeout: Optional[float] = None) -> bytes:
        self.public_key_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error

        scalar = int.from_bytes(self.private_key.to_bytes(), "big")
        private_key = ec.derive_private_key(scalar, ec.SECP256K1())
        return private_key.public_key().public_bytes(
            Encoding.DER, PublicFormat.SubjectPublicKeyInfo
        )


@pytest.fixture(autouse=True)
def reset_locks():
    """Clear address locks before each test."""
    clear_address_locks()
    yield
    clear_address_locks()


@pytest.fixture
def kms_service_factory():
    """Factory for fake KMS services."""
    return FakeKMSService


@pytest.fixture
def local_signer():
    """Local signer holding the scalar-1 key."""
    return load_local_signer(SCALAR_ONE_KEY)


@pytest.fixture
def chain_client():
    """Chain client double: nonce 5, 1 gwei, 21000 gas, echoes the tx hash."""
    client = AsyncMock()
    client.get_pending_nonce = AsyncMock(return_value=5)
    client.gas_price = AsyncMock(return_value=1_000_000_000)
    client.estimate_gas = AsyncMock(return_value=21000)
    client.chain_id = AsyncMock(return_value=56)
    client.broadcast = AsyncMock(side_effect=lambda raw: "0x" + keccak(raw).hex())
    return client
