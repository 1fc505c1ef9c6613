"""Transaction signing services.

Provides two interchangeable signing backends:
- LocalSigner: private key in memory
- KMSSigner: AWS KMS-backed signing
"""

from rollup_tx.signing.base import (
    SignatureTriple,
    SignerBackend,
    SignerType,
    SigningIdentity,
)
from rollup_tx.signing.factory import create_signer, load_kms_signer, load_local_signer
from rollup_tx.signing.kms import BotoKMSService, KMSSigner
from rollup_tx.signing.local import LocalSigner

__all__ = [
    "SignatureTriple",
    "SignerBackend",
    "SignerType",
    "SigningIdentity",
    "LocalSigner",
    "KMSSigner",
    "BotoKMSService",
    "create_signer",
    "load_kms_signer",
    "load_local_signer",
]
