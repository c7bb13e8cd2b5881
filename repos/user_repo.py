from __future__ import annotations

from typing import Any, Dict, Optional

from google.cloud.firestore import Client

from models.entities import User
from models.schema import COL_SYSTEM, COL_USERS, DOC_HEALTHZ
from storage.firestore_client import store_call


class UserRepository:
    """Profiles owned by the session provider. Read here, patched by reconciliation."""

    def __init__(self, db: Client, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    def _from_snap(self, snap) -> User:
        return User.model_validate({**(snap.to_dict() or {}), "user_id": snap.id})

    def get(self, user_id: str) -> Optional[User]:
        with store_call("users.get"):
            snap = self.db.collection(COL_USERS).document(user_id).get(timeout=self.timeout)
        if not snap.exists:
            return None
        return self._from_snap(snap)

    def _find_one(self, field: str, value: str) -> Optional[User]:
        query = self.db.collection(COL_USERS).where(field, "==", value).limit(1)
        with store_call(f"users.find_by_{field}"):
            snaps = list(query.stream(timeout=self.timeout))
        if not snaps:
            return None
        return self._from_snap(snaps[0])

    def find_by_email(self, email: str) -> Optional[User]:
        return self._find_one("email", email)

    def find_by_customer_id(self, customer_id: str) -> Optional[User]:
        return self._find_one("stripe_customer_id", customer_id)

    def update(self, user_id: str, data: Dict[str, Any]) -> None:
        with store_call("users.update", write=True):
            self.db.collection(COL_USERS).document(user_id).set(data, merge=True, timeout=self.timeout)

    def ping(self) -> None:
        # Read-only probe against a fixed doc path.
        with store_call("system.healthz"):
            self.db.collection(COL_SYSTEM).document(DOC_HEALTHZ).get(timeout=self.timeout)
