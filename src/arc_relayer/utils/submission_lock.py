"""
Per-identity submission locks.

An account's transactions must reach the node in nonce order, so every
component that signs and sends for the same account on the same chain
shares one asyncio.Lock from this registry.
"""

import asyncio
import logging

logger = logging.getLogger(__name__)

_locks: dict[tuple[str, str], asyncio.Lock] = {}


def get_submission_lock(rpc_url: str, address: str) -> asyncio.Lock:
    """
    Return the process-wide lock guarding sign-and-send for an account.

    Args:
        rpc_url: RPC endpoint identifying the chain
        address: Signing account address (any case)

    Returns:
        The shared lock for (rpc_url, address)
    """
    key = (rpc_url.rstrip("/"), address.lower())
    if key not in _locks:
        logger.debug(f"Creating submission lock for {address} on {rpc_url}")
        _locks[key] = asyncio.Lock()
    return _locks[key]


def reset_submission_locks() -> None:
    """Drop all registered locks (used between event loops in tests)."""
    _locks.clear()
