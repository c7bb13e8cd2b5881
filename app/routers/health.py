from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.deps import get_store
from billing.errors import StoreError
from config.settings import settings
from ops.metrics import Timer
from storage.entitlement_store import EntitlementStore

router = APIRouter()


def _store_probe(store: EntitlementStore) -> Dict[str, Any]:
    """Single read against system/healthz, bounded by the store timeout."""
    timer = Timer()
    try:
        store.users.ping()
    except StoreError as e:
        return {"ok": False, "error_type": type(e).__name__, "op": e.op, "latency_ms": timer.ms()}
    return {"ok": True, "latency_ms": timer.ms()}


@router.get("/health")
def health(store: EntitlementStore = Depends(get_store)):
    fs = _store_probe(store)
    return {
        "ok": bool(fs["ok"]),
        "service": "snippets-billing-api",
        "cloudrun_service": os.getenv("K_SERVICE") or "snippets-billing",
        "revision": os.getenv("K_REVISION") or "",
        "environment": settings.ENVIRONMENT,
        "stripe_configured": bool(settings.STRIPE_API_KEY and settings.STRIPE_WEBHOOK_SECRET),
        "webhook_secret_configured": bool(settings.STRIPE_WEBHOOK_SECRET),
        "store": fs,
        "time_unix": time.time(),
    }
