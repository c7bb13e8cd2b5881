from __future__ import annotations

from google.cloud import firestore
from google.cloud.firestore import Client

from models.entities import SubscriptionRecord
from models.schema import COL_SUBSCRIPTIONS
from storage.firestore_client import store_call


class SubscriptionRepository:
    def __init__(self, db: Client, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    def upsert(self, record: SubscriptionRecord) -> None:
        # Keyed by subscription id; merge means last write wins per field.
        doc = {**record.to_doc(), "updated_at": firestore.SERVER_TIMESTAMP}
        with store_call("subscriptions.upsert", write=True):
            ref = self.db.collection(COL_SUBSCRIPTIONS).document(record.stripe_subscription_id)
            ref.set(doc, merge=True, timeout=self.timeout)
