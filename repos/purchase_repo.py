from __future__ import annotations

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore import Client

from billing.errors import DuplicateEvent
from models.entities import Purchase
from models.schema import COL_PURCHASES
from storage.firestore_client import store_call


class PurchaseRepository:
    """One document per Stripe checkout session id; never updated after create."""

    def __init__(self, db: Client, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    def _ref(self, session_id: str):
        return self.db.collection(COL_PURCHASES).document(session_id)

    def exists(self, session_id: str) -> bool:
        with store_call("purchases.get"):
            return self._ref(session_id).get(timeout=self.timeout).exists

    def create(self, purchase: Purchase) -> None:
        doc = {**purchase.to_doc(), "created_at": firestore.SERVER_TIMESTAMP}
        with store_call("purchases.create", write=True):
            try:
                self._ref(purchase.stripe_session_id).create(doc, timeout=self.timeout)
            except gexc.Conflict as e:
                raise DuplicateEvent(purchase.stripe_session_id, "purchase_exists") from e
