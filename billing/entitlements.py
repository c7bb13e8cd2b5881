from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException

from models.entities import AccessGrant
from storage.entitlement_store import EntitlementStore


class EntitlementService:
    def __init__(self, store: EntitlementStore):
        self.store = store

    def access_for(self, user_id: str, snippet_id: str) -> Optional[AccessGrant]:
        return self.store.access.get(user_id, snippet_id)

    def require_access(self, user_id: str, snippet_id: str) -> AccessGrant:
        grant = self.access_for(user_id, snippet_id)
        if grant is None:
            raise HTTPException(status_code=402, detail="snippet_access_required")
        return grant

    def subscription_status(self, user_id: str) -> Dict[str, Any]:
        user = self.store.users.get(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="user_not_found")
        return {
            "user_id": user_id,
            "subscription_status": user.subscription_status or "inactive",
            "plan": user.subscription_plan,
        }
