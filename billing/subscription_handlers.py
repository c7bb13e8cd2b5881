from __future__ import annotations

import logging
from typing import Callable, Optional

from billing.errors import DuplicateEvent
from billing.reconcile import (
    OUTCOME_IGNORED,
    Clock,
    attempt_write,
    resolve_user_by_customer,
    resolve_user_by_email,
    utcnow,
    write_outcome,
)
from models.entities import AccessGrant, AccessType, SubscriptionRecord
from models.events import CheckoutSession, Invoice, Subscription
from storage.entitlement_store import EntitlementStore

log = logging.getLogger("snippets.reconcile.subscription")

PlanLookup = Callable[[Optional[str]], Optional[str]]


class SubscriptionActivationHandler:
    """Subscription checkout -> active profile + access to every published snippet."""

    def __init__(self, store: EntitlementStore, now: Clock = utcnow):
        self.store = store
        self.now = now

    def handle(self, session: CheckoutSession) -> str:
        user = resolve_user_by_email(self.store.users, session.payer_email)
        subscription_id = session.subscription

        if subscription_id and user.stripe_subscription_id == subscription_id:
            raise DuplicateEvent(subscription_id, "subscription_already_activated")

        ctx = {"user_id": user.user_id, "stripe_subscription_id": subscription_id, "session_id": session.id}
        activated = attempt_write(
            log,
            "activate_subscription",
            lambda: self.store.users.update(user.user_id, {
                "subscription_status": "active",
                "subscription_plan": session.metadata.plan,
                "stripe_subscription_id": subscription_id,
                "stripe_customer_id": session.customer,
                "subscription_start_date": self.now(),
            }),
            **ctx,
        )

        published = self.store.catalog.list_published()
        existing = set(self.store.access.list_snippet_ids(user.user_id))
        missing = [s.snippet_id for s in published if s.snippet_id not in existing]
        if not missing:
            log.info("snippet_access_already_complete", extra={"extra": {**ctx, "published": len(published)}})
            return write_outcome(activated)

        grants = [AccessGrant(user_id=user.user_id, snippet_id=sid, access_type=AccessType.SUBSCRIPTION) for sid in missing]
        created = 0

        def _grant() -> None:
            nonlocal created
            created = self.store.access.bulk_create(grants)

        granted = attempt_write(log, "grant_subscription_access", _grant, **ctx)
        if granted:
            log.info(
                "subscription_access_granted",
                extra={"extra": {**ctx, "granted": created, "published": len(published)}},
            )
        return write_outcome(activated, granted)


class InvoicePaidHandler:
    """Recurring renewal: refresh the period end and keep the profile active."""

    def __init__(self, store: EntitlementStore):
        self.store = store

    def handle(self, invoice: Invoice) -> str:
        subscription_id = invoice.subscription_id
        if not subscription_id:
            log.warning("invoice_without_subscription", extra={"extra": {"invoice_id": invoice.id}})
            return OUTCOME_IGNORED

        user = resolve_user_by_customer(self.store.users, invoice.customer)
        ctx = {"user_id": user.user_id, "stripe_subscription_id": subscription_id, "invoice_id": invoice.id}

        recorded = attempt_write(
            log,
            "upsert_subscription",
            lambda: self.store.subscriptions.upsert(SubscriptionRecord(
                stripe_subscription_id=subscription_id,
                user_id=user.user_id,
                stripe_customer_id=invoice.customer,
                status="active",
                current_period_end=invoice.period_end,
            )),
            **ctx,
        )
        mirrored = attempt_write(
            log,
            "mirror_subscription_status",
            lambda: self.store.users.update(user.user_id, {"subscription_status": "active"}),
            **ctx,
        )
        return write_outcome(recorded, mirrored)


class SubscriptionLifecycleHandler:
    """
    customer.subscription.updated / .deleted -> subscription record + profile mirror.

    Records are last-write-wins: an older event processed after a newer one
    overwrites it. Cancellation does not revoke any AccessGrant.
    """

    def __init__(self, store: EntitlementStore, plan_for_price: PlanLookup, now: Clock = utcnow):
        self.store = store
        self.plan_for_price = plan_for_price
        self.now = now

    def _plan(self, sub: Subscription) -> Optional[str]:
        return self.plan_for_price(sub.price_id) or sub.interval

    def _apply(self, sub: Subscription, record: dict, profile: dict) -> str:
        user = resolve_user_by_customer(self.store.users, sub.customer)
        ctx = {"user_id": user.user_id, "stripe_subscription_id": sub.id, "status": record.get("status")}
        recorded = attempt_write(
            log,
            "upsert_subscription",
            lambda: self.store.subscriptions.upsert(SubscriptionRecord(
                stripe_subscription_id=sub.id,
                user_id=user.user_id,
                stripe_customer_id=sub.customer,
                **record,
            )),
            **ctx,
        )
        mirrored = attempt_write(
            log, "mirror_subscription_status", lambda: self.store.users.update(user.user_id, profile), **ctx
        )
        outcome = write_outcome(recorded, mirrored)
        log.info("subscription_state_recorded", extra={"extra": {**ctx, "outcome": outcome}})
        return outcome

    def updated(self, sub: Subscription) -> str:
        plan = self._plan(sub)
        record = {
            "status": sub.status,
            "current_period_start": sub.period_start,
            "current_period_end": sub.period_end,
            "price_id": sub.price_id,
            "plan": plan,
        }
        return self._apply(sub, record, {"subscription_status": sub.status, "subscription_plan": plan})

    def deleted(self, sub: Subscription) -> str:
        ended = self.now()
        record = {
            "status": "canceled",
            "current_period_start": sub.period_start,
            "current_period_end": sub.period_end,
            "price_id": sub.price_id,
            "plan": self._plan(sub),
            "canceled_at": ended,
        }
        return self._apply(sub, record, {"subscription_status": "canceled", "subscription_end_date": ended})
