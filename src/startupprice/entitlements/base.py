"""Entitlement record and keyed-store interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class UserEntitlement:
    """Premium status of one user.

    Frozen so a record handed to a reader can never change underneath it.
    """

    user_id: str
    email: str
    is_premium: bool


class EntitlementStore(ABC):
    """Keyed store of user entitlements.

    Implementations must make a single-record write atomic. No operation
    spans more than one record.
    """

    @abstractmethod
    async def upsert_premium(self, user_id: str, email: str) -> UserEntitlement:
        """
        Mark a user premium, creating the record if absent.

        Overwrites the stored email. Applying the same call repeatedly
        leaves the record in the same state.

        Args:
            user_id: Caller-supplied user identifier
            email: Last-known-good contact address

        Returns:
            The record as stored
        """
        pass

    @abstractmethod
    async def get(self, user_id: str) -> UserEntitlement | None:
        """
        Fetch a user's record.

        Returns:
            UserEntitlement, or None if the user never purchased
        """
        pass

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        """Remove a user's record (administrative use)."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every record (tests only)."""
        pass

    async def is_premium(self, user_id: str) -> bool:
        """True if the user has a premium record."""
        record = await self.get(user_id)
        return record is not None and record.is_premium
