from __future__ import annotations

import logging
from typing import Callable, Dict

from billing.errors import DuplicateEvent, StoreError, StoreTimeout, UnresolvableUser, WebhookProcessingError
from billing.purchase_handler import PurchaseHandler
from billing.reconcile import OUTCOME_FAILED, OUTCOME_IGNORED, Clock, utcnow
from billing.subscription_handlers import (
    InvoicePaidHandler,
    PlanLookup,
    SubscriptionActivationHandler,
    SubscriptionLifecycleHandler,
)
from models.events import (
    CheckoutCompleted,
    EventKind,
    InvoicePaid,
    ProviderEvent,
    SubscriptionDeleted,
    SubscriptionUpdated,
)
from ops.metrics import Timer
from storage.entitlement_store import EntitlementStore
from utils.request_context import bind_event_id

log = logging.getLogger("snippets.webhook")


class EventRouter:
    """
    Sends each verified event to exactly one reconciliation handler.

    Unknown kinds are acknowledged as no-ops so that new provider event types
    never turn into redelivery loops. Only a store timeout escapes, as
    WebhookProcessingError, so that the provider retries later.
    """

    def __init__(self, store: EntitlementStore, plan_for_price: PlanLookup, now: Clock = utcnow):
        self.purchases = PurchaseHandler(store)
        self.activations = SubscriptionActivationHandler(store, now=now)
        self.invoices = InvoicePaidHandler(store)
        self.lifecycle = SubscriptionLifecycleHandler(store, plan_for_price, now=now)
        self._handlers: Dict[EventKind, Callable[[ProviderEvent], str]] = {
            EventKind.CHECKOUT_COMPLETED: self._checkout_completed,
            EventKind.INVOICE_PAID: self._invoice_paid,
            EventKind.SUBSCRIPTION_UPDATED: self._subscription_updated,
            EventKind.SUBSCRIPTION_DELETED: self._subscription_deleted,
            EventKind.UNKNOWN: self._ignore,
        }

    def _checkout_completed(self, event: CheckoutCompleted) -> str:
        if event.session.is_subscription:
            return self.activations.handle(event.session)
        return self.purchases.handle(event.session)

    def _invoice_paid(self, event: InvoicePaid) -> str:
        return self.invoices.handle(event.invoice)

    def _subscription_updated(self, event: SubscriptionUpdated) -> str:
        return self.lifecycle.updated(event.subscription)

    def _subscription_deleted(self, event: SubscriptionDeleted) -> str:
        return self.lifecycle.deleted(event.subscription)

    def _ignore(self, event: ProviderEvent) -> str:
        return OUTCOME_IGNORED

    def dispatch(self, event: ProviderEvent) -> str:
        with bind_event_id(event.id):
            return self._dispatch(event)

    def _dispatch(self, event: ProviderEvent) -> str:
        timer = Timer()
        ctx = {"event_id": event.id, "event_type": event.raw_type, "kind": event.kind.value}
        handler = self._handlers.get(event.kind, self._ignore)
        try:
            outcome = handler(event)
        except UnresolvableUser as e:
            log.warning("webhook_user_unresolved", extra={"extra": {**ctx, "reason": e.reason, **e.context}})
            outcome = OUTCOME_IGNORED
        except DuplicateEvent as e:
            log.info("webhook_duplicate_event", extra={"extra": {**ctx, "reason": e.reason, "key": e.key}})
            outcome = OUTCOME_IGNORED
        except StoreTimeout as e:
            log.error(
                "webhook_store_timeout",
                extra={"extra": {**ctx, "store_op": e.op, "duration_ms": timer.ms()}},
                exc_info=True,
            )
            raise WebhookProcessingError(event.id) from e
        except StoreError as e:
            log.error("webhook_store_error", extra={"extra": {**ctx, "store_op": e.op}}, exc_info=True)
            outcome = OUTCOME_FAILED

        log.info("webhook_event_processed", extra={"extra": {**ctx, "outcome": outcome, "duration_ms": timer.ms()}})
        return outcome
