from __future__ import annotations

import hashlib
import hmac
import json
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from billing.errors import DuplicateEvent, StoreTimeout, StoreWriteFailure
from config.settings import settings
from models.entities import AccessGrant, Snippet, SubscriptionRecord, User
from storage.entitlement_store import EntitlementStore

WEBHOOK_SECRET = "whsec_test_secret"
FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeRepo:
    def __init__(self):
        self.writes: List[str] = []
        self.fail_writes = False
        self.timeout = False

    def _read(self) -> None:
        if self.timeout:
            raise StoreTimeout("fake.read", "deadline exceeded")

    def _write(self, op: str) -> None:
        if self.timeout:
            raise StoreTimeout(op, "deadline exceeded")
        if self.fail_writes:
            raise StoreWriteFailure(op, "unavailable")
        self.writes.append(op)


class FakeUserRepository(_FakeRepo):
    def __init__(self):
        super().__init__()
        self.docs: Dict[str, Dict[str, Any]] = {}

    def add(self, user_id: str, **fields) -> None:
        self.docs[user_id] = dict(fields)

    def _user(self, user_id: str) -> User:
        return User.model_validate({**self.docs[user_id], "user_id": user_id})

    def get(self, user_id: str) -> Optional[User]:
        self._read()
        return self._user(user_id) if user_id in self.docs else None

    def find_by_email(self, email: str) -> Optional[User]:
        self._read()
        for uid, d in self.docs.items():
            if d.get("email") == email:
                return self._user(uid)
        return None

    def find_by_customer_id(self, customer_id: str) -> Optional[User]:
        self._read()
        for uid, d in self.docs.items():
            if d.get("stripe_customer_id") == customer_id:
                return self._user(uid)
        return None

    def update(self, user_id: str, data: Dict[str, Any]) -> None:
        self._write("users.update")
        self.docs.setdefault(user_id, {}).update(data)

    def ping(self) -> None:
        self._read()


class FakePurchaseRepository(_FakeRepo):
    def __init__(self):
        super().__init__()
        self.docs: Dict[str, Dict[str, Any]] = {}

    def exists(self, session_id: str) -> bool:
        self._read()
        return session_id in self.docs

    def create(self, purchase) -> None:
        if purchase.stripe_session_id in self.docs:
            raise DuplicateEvent(purchase.stripe_session_id, "purchase_exists")
        self._write("purchases.create")
        self.docs[purchase.stripe_session_id] = purchase.to_doc()


class FakeAccessRepository(_FakeRepo):
    def __init__(self):
        super().__init__()
        self.docs: Dict[tuple, Dict[str, Any]] = {}

    def get(self, user_id: str, snippet_id: str) -> Optional[AccessGrant]:
        self._read()
        d = self.docs.get((user_id, snippet_id))
        return AccessGrant(**d) if d else None

    def list_snippet_ids(self, user_id: str) -> List[str]:
        self._read()
        return [sid for (uid, sid) in self.docs if uid == user_id]

    def create(self, grant: AccessGrant) -> None:
        key = (grant.user_id, grant.snippet_id)
        if key in self.docs:
            raise DuplicateEvent(f"{grant.user_id}:{grant.snippet_id}", "access_exists")
        self._write("access.create")
        self.docs[key] = grant.to_doc()

    def bulk_create(self, grants) -> int:
        created = 0
        for g in grants:
            try:
                self.create(g)
                created += 1
            except DuplicateEvent:
                continue
        return created

    def for_user(self, user_id: str) -> Dict[str, str]:
        return {sid: d["access_type"] for (uid, sid), d in self.docs.items() if uid == user_id}


class FakeSubscriptionRepository(_FakeRepo):
    def __init__(self):
        super().__init__()
        self.docs: Dict[str, Dict[str, Any]] = {}

    def record(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        d = self.docs.get(subscription_id)
        return SubscriptionRecord.model_validate({**d, "stripe_subscription_id": subscription_id}) if d else None

    def upsert(self, record: SubscriptionRecord) -> None:
        self._write("subscriptions.upsert")
        self.docs.setdefault(record.stripe_subscription_id, {}).update(record.to_doc())


class FakeCatalogRepository(_FakeRepo):
    def __init__(self):
        super().__init__()
        self.snippets: Dict[str, Snippet] = {}

    def publish(self, snippet_id: str, price: float = 4.99, published: bool = True) -> None:
        self.snippets[snippet_id] = Snippet(snippet_id=snippet_id, title=snippet_id, price=price, is_published=published)

    def list_published(self, limit: int = 5000) -> List[Snippet]:
        self._read()
        return [s for s in self.snippets.values() if s.is_published][:limit]


def _make_store() -> EntitlementStore:
    return EntitlementStore(
        users=FakeUserRepository(),
        purchases=FakePurchaseRepository(),
        access=FakeAccessRepository(),
        subscriptions=FakeSubscriptionRepository(),
        catalog=FakeCatalogRepository(),
    )


def total_writes(store: EntitlementStore) -> int:
    return sum(len(r.writes) for r in (store.users, store.purchases, store.access, store.subscriptions))


@pytest.fixture
def store() -> EntitlementStore:
    s = _make_store()
    s.users.add("u_alice", email="a@b.com")
    for sid in ("mega-menu", "sticky-cart", "announcement-bar"):
        s.catalog.publish(sid)
    s.catalog.publish("draft-snippet", published=False)
    return s


@pytest.fixture
def writes():
    return total_writes


@pytest.fixture
def now():
    return lambda: FIXED_NOW


@pytest.fixture
def stripe_settings(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_API_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "STRIPE_PRICE_MONTHLY", "price_monthly")
    monkeypatch.setattr(settings, "STRIPE_PRICE_YEARLY", "price_yearly")
    monkeypatch.setattr(settings, "APP_BASE_URL", "https://snippets.example")
    return settings


@pytest.fixture
def client(store, stripe_settings):
    from app.api_service import create_app

    with TestClient(create_app(store=store)) as c:
        yield c


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {"object": obj},
    }).encode("utf-8")


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.".encode("utf-8") + payload
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


@pytest.fixture
def event_factory():
    return make_event


@pytest.fixture
def signer():
    return sign


def checkout_session(**overrides) -> Dict[str, Any]:
    obj = {
        "id": "sess_1",
        "object": "checkout.session",
        "mode": "payment",
        "amount_total": 2900,
        "customer": None,
        "subscription": None,
        "customer_details": {"email": None},
        "metadata": {"snippet_id": "mega-menu", "customer_email": "a@b.com"},
    }
    obj.update(overrides)
    return obj


@pytest.fixture
def session_obj():
    return checkout_session
