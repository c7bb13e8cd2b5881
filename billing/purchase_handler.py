from __future__ import annotations

import logging

from billing.errors import DuplicateEvent
from billing.reconcile import OUTCOME_IGNORED, attempt_write, resolve_user_by_email, write_outcome
from models.entities import AccessGrant, AccessType, Purchase
from models.events import CheckoutSession
from storage.entitlement_store import EntitlementStore

log = logging.getLogger("snippets.reconcile.purchase")


class PurchaseHandler:
    """
    One-off snippet checkout -> Purchase row + purchase-reason AccessGrant.

    Keyed by checkout session id. A redelivered event finds its Purchase and
    never writes a second one, but still restores a missing grant; it is a
    duplicate only once both exist. Every write is create-only.
    """

    def __init__(self, store: EntitlementStore):
        self.store = store

    def handle(self, session: CheckoutSession) -> str:
        snippet_id = session.metadata.snippet_id
        if not snippet_id:
            log.warning("checkout_session_missing_snippet", extra={"extra": {"session_id": session.id}})
            return OUTCOME_IGNORED

        user = resolve_user_by_email(self.store.users, session.payer_email)
        ctx = {"session_id": session.id, "user_id": user.user_id, "snippet_id": snippet_id}

        replay = self.store.purchases.exists(session.id)
        recorded = True
        if not replay:
            purchase = Purchase(
                user_id=user.user_id,
                snippet_id=snippet_id,
                amount=session.amount_major,
                stripe_session_id=session.id,
                status="completed",
            )
            try:
                recorded = attempt_write(log, "create_purchase", lambda: self.store.purchases.create(purchase), **ctx)
            except DuplicateEvent:
                # A concurrent delivery of the same session wrote it first.
                replay = True

        if self.store.access.get(user.user_id, snippet_id) is not None:
            if replay:
                raise DuplicateEvent(session.id, "purchase_exists")
            log.info("snippet_access_already_granted", extra={"extra": ctx})
            return write_outcome(recorded)

        grant = AccessGrant(user_id=user.user_id, snippet_id=snippet_id, access_type=AccessType.PURCHASE)
        try:
            granted = attempt_write(log, "grant_access", lambda: self.store.access.create(grant), **ctx)
        except DuplicateEvent:
            log.info("snippet_access_already_granted", extra={"extra": ctx})
            return write_outcome(recorded)

        if granted:
            msg = "snippet_access_restored" if replay else "snippet_access_granted"
            log.info(msg, extra={"extra": {**ctx, "access_type": "purchase"}})
        return write_outcome(recorded, granted)
