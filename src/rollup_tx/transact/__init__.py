"""Transaction options and signed envelopes."""

from rollup_tx.transact.envelope import SignedEnvelope, build_transaction, sign_transaction
from rollup_tx.transact.options import OptionsBuilder, TransactionOptions, TxType

__all__ = [
    "OptionsBuilder",
    "SignedEnvelope",
    "TransactionOptions",
    "TxType",
    "build_transaction",
    "sign_transaction",
]
