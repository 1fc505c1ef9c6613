"""Utility modules for rollup_tx."""

from rollup_tx.utils.locks import LockTimeoutError, get_address_lock, nonce_lock

__all__ = ["LockTimeoutError", "get_address_lock", "nonce_lock"]
