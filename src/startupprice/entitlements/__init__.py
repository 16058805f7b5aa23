"""User premium entitlements and their stores."""

from startupprice.entitlements.base import EntitlementStore, UserEntitlement
from startupprice.entitlements.memory import InMemoryEntitlementStore
from startupprice.entitlements.postgres import PostgresEntitlementStore

__all__ = [
    "EntitlementStore",
    "UserEntitlement",
    "InMemoryEntitlementStore",
    "PostgresEntitlementStore",
]
