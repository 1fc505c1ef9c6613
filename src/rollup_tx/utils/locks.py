"""Per-address locks for auto-nonce submissions.

When the nonce is fetched from the chain, two concurrent submissions from
the same address can read the same pending nonce and one of them gets
rejected on broadcast. Holding the address lock from nonce lookup until
broadcast keeps at most one such submission in flight per address within
this process. Submissions with an explicit nonce do not need it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from rollup_tx.errors import OptionsConstructionFailed

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 60.0

# Global lock registry: lowercase address -> asyncio.Lock
_address_locks: dict[str, asyncio.Lock] = {}
_registry_lock = asyncio.Lock()


class LockTimeoutError(OptionsConstructionFailed):
    """Raised when the address lock cannot be acquired within the timeout period.

    No nonce could be allocated, so it is an options construction failure.
    """

    pass


async def get_address_lock(address: str) -> asyncio.Lock:
    """Get or create the lock for a signer address.

    Args:
        address: Signer address (any casing)

    Returns:
        asyncio.Lock for the address
    """
    key = address.lower()
    async with _registry_lock:
        if key not in _address_locks:
            _address_locks[key] = asyncio.Lock()
        return _address_locks[key]


@asynccontextmanager
async def nonce_lock(
    address: str,
    timeout: Optional[float] = DEFAULT_LOCK_TIMEOUT,
    operation: str = "submission",
):
    """Serialize auto-nonce submissions for one address.

    Args:
        address: Signer address
        timeout: Maximum time to wait for lock (None = wait forever)
        operation: Description for logging

    Example:
        async with nonce_lock(signer.address, operation="commitBlocks"):
            options = await builder.build(signer, chain_id, gas_price, gas_limit)
            await contract.commit_blocks(options, ...)
    """
    lock = await get_address_lock(address)

    try:
        if timeout:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        else:
            await lock.acquire()
    except asyncio.TimeoutError as e:
        logger.warning(f"Nonce lock timeout for {address} after {timeout}s: {operation}")
        raise LockTimeoutError(
            f"Could not acquire nonce lock for {address} within {timeout}s"
        ) from e

    logger.debug(f"Nonce lock acquired for {address}: {operation}")
    try:
        yield
    finally:
        lock.release()
        logger.debug(f"Nonce lock released for {address}: {operation}")


def clear_address_locks() -> None:
    """Clear all address locks (useful for testing)."""
    _address_locks.clear()
