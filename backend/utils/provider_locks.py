import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from utils.logger import get_logger

logger = get_logger("provider_locks")


class ProviderLocks:
    """One asyncio.Lock per provider id.

    Holding a provider's lock serializes the read-compare-write cycle of its
    tier assignment and the ledger writes that depend on it. Locks for
    different providers never contend.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_lock(self, provider_id: str) -> asyncio.Lock:
        """Get or create a lock for a provider"""
        if provider_id not in self._locks:
            self._locks[provider_id] = asyncio.Lock()
        return self._locks[provider_id]

    @asynccontextmanager
    async def hold(self, provider_id: str) -> AsyncIterator[None]:
        lock = self._get_lock(provider_id)
        if lock.locked():
            logger.debug("Waiting for provider lock", provider_id=provider_id)
        async with lock:
            yield


# Global per-provider lock registry
provider_locks = ProviderLocks()
