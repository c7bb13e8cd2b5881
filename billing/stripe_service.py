from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from billing.errors import CheckoutError, InvalidPlan
from config.settings import Settings

log = logging.getLogger("snippets.checkout")


@dataclass(frozen=True)
class CheckoutSession:
    url: str
    id: str


class CheckoutSessionFactory:
    """
    Starts hosted Stripe Checkout / Portal sessions.

    The returned session id comes back on checkout.session.completed and is
    the key the purchase webhook deduplicates on.
    """

    def __init__(self, cfg: Settings):
        self.cfg = cfg

    def _base_url(self, origin: Optional[str]) -> str:
        return (self.cfg.APP_BASE_URL or origin or "").rstrip("/")

    def _redirects(self, success_url: Optional[str], cancel_url: Optional[str], origin: Optional[str]) -> Dict[str, str]:
        base = self._base_url(origin)
        if not base and not (success_url and cancel_url):
            raise CheckoutError("missing_redirect_base")
        return {
            "success_url": success_url or f"{base}/?checkout=success",
            "cancel_url": cancel_url or f"{base}/?checkout=canceled",
        }

    def _create(self, kind: str, params: Dict[str, Any]) -> CheckoutSession:
        if not self.cfg.STRIPE_API_KEY:
            raise CheckoutError("stripe_not_configured")
        try:
            session = stripe.checkout.Session.create(api_key=self.cfg.STRIPE_API_KEY, **params)
        except stripe.StripeError as e:
            log.error(
                "checkout_session_failed",
                extra={"extra": {"kind": kind, "error_type": type(e).__name__, "message": e.user_message or str(e)}},
            )
            raise CheckoutError(e.user_message or "checkout_session_failed") from e
        log.info("checkout_session_created", extra={"extra": {"kind": kind, "session_id": session.id}})
        return CheckoutSession(url=session.url, id=session.id)

    def begin_purchase(
        self,
        snippet_id: str,
        price: float,
        quantity: int = 1,
        email: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> CheckoutSession:
        metadata = {"snippet_id": snippet_id}
        if email:
            metadata["customer_email"] = email
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": self.cfg.CHECKOUT_CURRENCY,
                    "product_data": {"name": f"Snippet {snippet_id}"},
                    "unit_amount": int(round(price * 100)),
                },
                "quantity": quantity,
            }],
            "metadata": metadata,
            **self._redirects(success_url, cancel_url, origin),
        }
        if email:
            params["customer_email"] = email
        return self._create("payment", params)

    def begin_subscription(
        self,
        plan: str,
        email: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> CheckoutSession:
        price_id = self.cfg.price_for_plan(plan)
        if not price_id:
            raise InvalidPlan(plan)
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "metadata": {"plan": plan},
            **self._redirects(success_url, cancel_url, origin),
        }
        if email:
            params["customer_email"] = email
        return self._create("subscription", params)

    def begin_portal(self, customer_id: str, return_url: Optional[str] = None, origin: Optional[str] = None) -> str:
        if not self.cfg.STRIPE_API_KEY:
            raise CheckoutError("stripe_not_configured")
        try:
            portal = stripe.billing_portal.Session.create(
                api_key=self.cfg.STRIPE_API_KEY,
                customer=customer_id,
                return_url=return_url or self._base_url(origin),
            )
        except stripe.StripeError as e:
            log.error("portal_session_failed", extra={"extra": {"error_type": type(e).__name__}})
            raise CheckoutError(e.user_message or "portal_session_failed") from e
        return portal.url
