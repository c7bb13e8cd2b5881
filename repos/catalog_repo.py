from __future__ import annotations

from typing import List

from google.cloud.firestore import Client

from models.entities import Snippet
from models.schema import COL_SNIPPETS
from storage.firestore_client import store_call


class CatalogRepository:
    def __init__(self, db: Client, timeout: float = 5.0):
        self.db = db
        self.timeout = timeout

    def list_published(self, limit: int = 5000) -> List[Snippet]:
        query = self.db.collection(COL_SNIPPETS).where("is_published", "==", True).limit(limit)
        with store_call("snippets.list_published"):
            snaps = list(query.stream(timeout=self.timeout))
        return [Snippet.model_validate({**(s.to_dict() or {}), "snippet_id": s.id}) for s in snaps]
