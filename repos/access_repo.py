from __future__ import annotations

from typing import Iterable, List, Optional

from google.api_core import exceptions as gexc
from google.cloud import firestore
from google.cloud.firestore import Client

from billing.errors import DuplicateEvent
from models.entities import AccessGrant
from models.schema import COL_SNIPPET_ACCESS, COL_USERS
from storage.firestore_client import store_call

# Firestore caps a batch at 500 writes.
BATCH_SIZE = 400


class AccessRepository:
    """
    Per-user snippet grants at users/{user_id}/snippet_access/{snippet_id}.

    The document path is the (user, snippet) uniqueness key; grants are only
    ever created with create(), so an existing grant is never rewritten.
    """

    def __init__(self, db: Client, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    def _col(self, user_id: str):
        return self.db.collection(COL_USERS).document(user_id).collection(COL_SNIPPET_ACCESS)

    def get(self, user_id: str, snippet_id: str) -> Optional[AccessGrant]:
        with store_call("access.get"):
            snap = self._col(user_id).document(snippet_id).get(timeout=self.timeout)
        if not snap.exists:
            return None
        d = snap.to_dict() or {}
        return AccessGrant(user_id=user_id, snippet_id=snippet_id, access_type=d.get("access_type", "purchase"))

    def list_snippet_ids(self, user_id: str) -> List[str]:
        with store_call("access.list"):
            return [snap.id for snap in self._col(user_id).stream(timeout=self.timeout)]

    def create(self, grant: AccessGrant) -> None:
        doc = {**grant.to_doc(), "granted_at": firestore.SERVER_TIMESTAMP}
        with store_call("access.create", write=True):
            try:
                self._col(grant.user_id).document(grant.snippet_id).create(doc, timeout=self.timeout)
            except gexc.Conflict as e:
                raise DuplicateEvent(f"{grant.user_id}:{grant.snippet_id}", "access_exists") from e

    def _commit_batch(self, grants: List[AccessGrant]) -> None:
        batch = self.db.batch()
        for g in grants:
            batch.create(self._col(g.user_id).document(g.snippet_id), {**g.to_doc(), "granted_at": firestore.SERVER_TIMESTAMP})
        with store_call("access.bulk_create", write=True):
            try:
                batch.commit(timeout=self.timeout)
            except gexc.Conflict as e:
                raise DuplicateEvent(grants[0].user_id, "access_batch_conflict") from e

    def bulk_create(self, grants: Iterable[AccessGrant]) -> int:
        """Create grants in batches; returns how many were written."""
        pending = list(grants)
        created = 0
        for i in range(0, len(pending), BATCH_SIZE):
            chunk = pending[i:i + BATCH_SIZE]
            try:
                self._commit_batch(chunk)
                created += len(chunk)
            except DuplicateEvent:
                # A concurrent writer got there first; fall back to one-by-one.
                for g in chunk:
                    try:
                        self.create(g)
                        created += 1
                    except DuplicateEvent:
                        continue
        return created
