from datetime import datetime, timezone

import pytest

from billing.event_router import EventRouter
from billing.reconcile import OUTCOME_APPLIED, OUTCOME_IGNORED, OUTCOME_PARTIAL
from models.entities import AccessGrant, AccessType
from models.events import parse_event

PRICES = {"price_monthly": "monthly", "price_yearly": "yearly"}


@pytest.fixture
def router(store, now):
    return EventRouter(store, plan_for_price=PRICES.get, now=now)


@pytest.fixture
def activation(event_factory, session_obj):
    def _make(subscription="sub_1", customer="cus_1"):
        obj = session_obj(
            id=f"sess_{subscription}",
            mode="subscription",
            amount_total=900,
            subscription=subscription,
            customer=customer,
            metadata={"plan": "monthly", "customer_email": "a@b.com"},
        )
        return parse_event(event_factory("checkout.session.completed", obj))
    return _make


def _subscription_event(event_factory, event_type, **fields):
    obj = {"id": "sub_1", "customer": "cus_1", "status": "active"}
    obj.update(fields)
    return parse_event(event_factory(event_type, obj))


def test_activation_updates_profile_and_grants_published(router, store, activation, now):
    assert router.dispatch(activation()) == OUTCOME_APPLIED

    profile = store.users.docs["u_alice"]
    assert profile["subscription_status"] == "active"
    assert profile["subscription_plan"] == "monthly"
    assert profile["stripe_subscription_id"] == "sub_1"
    assert profile["stripe_customer_id"] == "cus_1"
    assert profile["subscription_start_date"] == now()
    assert store.access.for_user("u_alice") == {
        "mega-menu": "subscription",
        "sticky-cart": "subscription",
        "announcement-bar": "subscription",
    }


def test_activation_keeps_purchase_grants(router, store, activation):
    store.access.create(AccessGrant(user_id="u_alice", snippet_id="mega-menu", access_type=AccessType.PURCHASE))

    router.dispatch(activation())

    grants = store.access.for_user("u_alice")
    assert grants["mega-menu"] == "purchase"
    assert grants["sticky-cart"] == "subscription"
    assert len(grants) == 3


def test_activation_replay_grants_nothing_new(router, store, activation, writes):
    router.dispatch(activation())
    before = writes(store)

    store.catalog.publish("new-snippet")
    assert router.dispatch(activation()) == OUTCOME_IGNORED

    assert writes(store) == before
    assert "new-snippet" not in store.access.for_user("u_alice")


def test_new_subscription_grants_newly_published(router, store, activation):
    router.dispatch(activation())
    store.catalog.publish("new-snippet")

    router.dispatch(activation(subscription="sub_2"))

    assert store.access.for_user("u_alice")["new-snippet"] == "subscription"
    assert store.users.docs["u_alice"]["stripe_subscription_id"] == "sub_2"


def test_activation_for_unknown_email_is_noop(router, store, event_factory, session_obj, writes):
    obj = session_obj(mode="subscription", subscription="sub_1", metadata={"plan": "monthly", "customer_email": "x@y.com"})
    assert router.dispatch(parse_event(event_factory("checkout.session.completed", obj))) == OUTCOME_IGNORED
    assert writes(store) == 0


def test_invoice_paid_refreshes_period_and_status(router, store, event_factory):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1", subscription_status="past_due")
    obj = {
        "id": "in_1",
        "customer": "cus_1",
        "subscription": "sub_1",
        "lines": {"data": [{"period": {"start": 1767225600, "end": 1769904000}}]},
    }
    assert router.dispatch(parse_event(event_factory("invoice.paid", obj))) == OUTCOME_APPLIED

    rec = store.subscriptions.record("sub_1")
    assert rec.user_id == "u_bob"
    assert rec.status == "active"
    assert rec.current_period_end == datetime(2026, 2, 1, tzinfo=timezone.utc)
    assert store.users.docs["u_bob"]["subscription_status"] == "active"


def test_invoice_for_unknown_customer_is_noop(router, store, event_factory, writes):
    obj = {"id": "in_1", "customer": "cus_missing", "subscription": "sub_1", "lines": {"data": []}}
    assert router.dispatch(parse_event(event_factory("invoice.paid", obj))) == OUTCOME_IGNORED
    assert writes(store) == 0


def test_invoice_without_subscription_is_ignored(router, store, event_factory, writes):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1")
    obj = {"id": "in_1", "customer": "cus_1", "lines": {"data": []}}
    assert router.dispatch(parse_event(event_factory("invoice.paid", obj))) == OUTCOME_IGNORED
    assert writes(store) == 0


def test_subscription_updated_snapshot_and_plan_mapping(router, store, event_factory):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1")
    ev = _subscription_event(
        event_factory,
        "customer.subscription.updated",
        status="past_due",
        current_period_start=1767225600,
        current_period_end=1769904000,
        items={"data": [{"price": {"id": "price_yearly", "recurring": {"interval": "year"}}}]},
    )
    router.dispatch(ev)

    rec = store.subscriptions.record("sub_1")
    assert rec.status == "past_due"
    assert rec.plan == "yearly"
    assert rec.price_id == "price_yearly"
    assert rec.current_period_start == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert store.users.docs["u_bob"]["subscription_status"] == "past_due"
    assert store.users.docs["u_bob"]["subscription_plan"] == "yearly"


def test_unmapped_price_falls_back_to_interval(router, store, event_factory):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1")
    ev = _subscription_event(
        event_factory,
        "customer.subscription.updated",
        items={"data": [{"price": {"id": "price_legacy", "recurring": {"interval": "month"}}}]},
    )
    router.dispatch(ev)
    assert store.subscriptions.record("sub_1").plan == "month"


def test_out_of_order_updates_last_processed_wins(router, store, event_factory):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1")
    newer = _subscription_event(event_factory, "customer.subscription.updated", status="active")
    older = _subscription_event(event_factory, "customer.subscription.updated", status="incomplete")

    router.dispatch(newer)
    router.dispatch(older)

    assert store.subscriptions.record("sub_1").status == "incomplete"
    assert store.users.docs["u_bob"]["subscription_status"] == "incomplete"
    assert len(store.subscriptions.docs) == 1


def test_subscription_deleted_cancels_without_revoking(router, store, event_factory, now):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1", subscription_status="active")
    store.access.create(AccessGrant(user_id="u_bob", snippet_id="mega-menu", access_type=AccessType.SUBSCRIPTION))
    store.access.create(AccessGrant(user_id="u_bob", snippet_id="sticky-cart", access_type=AccessType.PURCHASE))
    before = dict(store.access.docs)

    ev = _subscription_event(event_factory, "customer.subscription.deleted", status="canceled")
    assert router.dispatch(ev) == OUTCOME_APPLIED

    rec = store.subscriptions.record("sub_1")
    assert rec.status == "canceled"
    assert rec.canceled_at == now()
    assert store.users.docs["u_bob"]["subscription_status"] == "canceled"
    assert store.users.docs["u_bob"]["subscription_end_date"] == now()
    assert store.access.docs == before


def test_lifecycle_for_unknown_customer_is_noop(router, store, event_factory, writes):
    ev = _subscription_event(event_factory, "customer.subscription.deleted", customer="cus_missing")
    assert router.dispatch(ev) == OUTCOME_IGNORED
    assert writes(store) == 0


def test_activation_grant_failure_is_reported_partial(router, store, activation):
    store.access.fail_writes = True
    assert router.dispatch(activation()) == OUTCOME_PARTIAL
    assert store.users.docs["u_alice"]["subscription_status"] == "active"
    assert store.access.for_user("u_alice") == {}


def test_invoice_profile_mirror_failure_is_reported_partial(router, store, event_factory):
    store.users.add("u_bob", email="bob@b.com", stripe_customer_id="cus_1")
    store.users.fail_writes = True
    obj = {"id": "in_1", "customer": "cus_1", "subscription": "sub_1", "lines": {"data": []}}
    assert router.dispatch(parse_event(event_factory("invoice.paid", obj))) == OUTCOME_PARTIAL
    assert store.subscriptions.record("sub_1").status == "active"
