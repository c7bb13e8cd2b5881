from __future__ import annotations

from fastapi import Request

from billing.event_router import EventRouter
from billing.stripe_service import CheckoutSessionFactory
from billing.stripe_webhook import StripeWebhookHandler
from billing.verifier import EventVerifier
from config.settings import settings
from storage.entitlement_store import EntitlementStore


def get_store(request: Request) -> EntitlementStore:
    return request.app.state.store


def get_webhook_handler(request: Request) -> StripeWebhookHandler:
    store = get_store(request)
    verifier = EventVerifier(settings.STRIPE_WEBHOOK_SECRET, tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS)
    router = EventRouter(store, plan_for_price=settings.plan_for_price)
    return StripeWebhookHandler(verifier, router)


def get_checkout_factory() -> CheckoutSessionFactory:
    return CheckoutSessionFactory(settings)
