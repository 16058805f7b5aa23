"""In-memory entitlement store."""

import asyncio
import logging

from startupprice.entitlements.base import EntitlementStore, UserEntitlement

logger = logging.getLogger(__name__)


class InMemoryEntitlementStore(EntitlementStore):
    """
    Process-local entitlement store backed by a dict.

    Placeholder for a durable store: state is lost on restart and is not
    shared between processes.
    """

    def __init__(self):
        self._records: dict[str, UserEntitlement] = {}
        self._lock = asyncio.Lock()

    async def upsert_premium(self, user_id: str, email: str) -> UserEntitlement:
        record = UserEntitlement(user_id=user_id, email=email, is_premium=True)
        async with self._lock:
            self._records[user_id] = record
        logger.info(f"User marked premium: user_id={user_id}")
        return record

    async def get(self, user_id: str) -> UserEntitlement | None:
        return self._records.get(user_id)

    async def delete(self, user_id: str) -> None:
        async with self._lock:
            self._records.pop(user_id, None)

    async def clear(self) -> None:
        async with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
