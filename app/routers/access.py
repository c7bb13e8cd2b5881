from __future__ import annotations

from fastapi import APIRouter, Depends

from app.deps import get_store
from billing.entitlements import EntitlementService
from storage.entitlement_store import EntitlementStore

router = APIRouter()


@router.get("/snippets/{snippet_id}/access")
def snippet_access(snippet_id: str, user_id: str, store: EntitlementStore = Depends(get_store)):
    grant = EntitlementService(store).access_for(user_id, snippet_id)
    return {
        "ok": True,
        "snippet_id": snippet_id,
        "has_access": grant is not None,
        "access_type": grant.access_type.value if grant else None,
    }


@router.get("/snippets/{snippet_id}/code-access")
def require_snippet_access(snippet_id: str, user_id: str, store: EntitlementStore = Depends(get_store)):
    grant = EntitlementService(store).require_access(user_id, snippet_id)
    return {"ok": True, "snippet_id": snippet_id, "access_type": grant.access_type.value}
