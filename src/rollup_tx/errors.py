"""Exception hierarchy for transaction authorization and submission.

Every layer raises its own error kind and chains the lower-level cause
(``raise ... from exc``). Nothing here retries: whether an error is worth
retrying is decided by the caller.
"""

from typing import Optional


class RollupTxError(Exception):
    """Base class for all rollup_tx errors."""

    pass


class ConfigurationError(RollupTxError):
    """Required setting is missing or invalid (contract address, ABI file, envelope type)."""

    pass


class InvalidKeyMaterial(RollupTxError):
    """Local private key is malformed or outside the curve order.

    Not retriable: a different key must be supplied.
    """

    pass


class KeyResolutionFailed(RollupTxError):
    """Remote key lookup (KMS GetPublicKey) failed."""

    pass


class SigningFailed(RollupTxError):
    """Raised when a signature could not be produced."""

    pass


class RecoveryMismatchError(SigningFailed):
    """Neither recovery id recovers the expected address.

    Signals a corrupted KMS response or a key/address mismatch. Retrying
    with the same inputs reproduces it.
    """

    pass


class SigningTimeoutError(SigningFailed):
    """Raised when the remote signer does not answer in time."""

    pass


class OptionsConstructionFailed(RollupTxError):
    """Transaction options could not be built (bad input or nonce lookup failure)."""

    pass


class ChainClientError(RollupTxError):
    """JSON-RPC call failed or returned an error object."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class CallFailed(RollupTxError):
    """Rollup contract call failed during encoding, signing or broadcast."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"{operation}: {message}")
