from __future__ import annotations

from typing import Any, Optional

from config.settings import Settings
from repos.access_repo import AccessRepository
from repos.catalog_repo import CatalogRepository
from repos.purchase_repo import PurchaseRepository
from repos.subscription_repo import SubscriptionRepository
from repos.user_repo import UserRepository
from storage.firestore_client import get_firestore_client


class EntitlementStore:
    """
    The repositories reconciliation reads and writes, sharing one client.

    Built once by the process entry point and handed to every handler; nothing
    below this holds a module-level client.
    """

    def __init__(
        self,
        users: UserRepository,
        purchases: PurchaseRepository,
        access: AccessRepository,
        subscriptions: SubscriptionRepository,
        catalog: CatalogRepository,
        client: Optional[Any] = None,
    ):
        self.users = users
        self.purchases = purchases
        self.access = access
        self.subscriptions = subscriptions
        self.catalog = catalog
        self.client = client

    @classmethod
    def from_client(cls, db: Any, timeout: float) -> "EntitlementStore":
        return cls(
            users=UserRepository(db, timeout),
            purchases=PurchaseRepository(db, timeout),
            access=AccessRepository(db, timeout),
            subscriptions=SubscriptionRepository(db, timeout),
            catalog=CatalogRepository(db, timeout),
            client=db,
        )

    @classmethod
    def from_settings(cls, cfg: Settings) -> "EntitlementStore":
        return cls.from_client(get_firestore_client(cfg), cfg.STORE_TIMEOUT_SECONDS)

    def close(self) -> None:
        if self.client is not None and hasattr(self.client, "close"):
            self.client.close()
