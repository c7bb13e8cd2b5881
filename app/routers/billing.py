from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from app.deps import get_checkout_factory, get_store, get_webhook_handler
from billing.entitlements import EntitlementService
from billing.stripe_service import CheckoutSessionFactory
from billing.stripe_webhook import StripeWebhookHandler
from storage.entitlement_store import EntitlementStore

router = APIRouter()


class _ClientBody(BaseModel):
    # The storefront client posts camelCase keys.
    model_config = ConfigDict(populate_by_name=True)


class CheckoutRequest(_ClientBody):
    snippet_id: str = Field(..., alias="snippetId", min_length=1, max_length=128)
    amount: float = Field(..., gt=0)
    quantity: int = Field(default=1, ge=1, le=10)
    customer_email: str | None = Field(default=None, alias="customerEmail")
    success_url: str | None = Field(default=None, alias="successUrl")
    cancel_url: str | None = Field(default=None, alias="cancelUrl")


class SubscriptionCheckoutRequest(_ClientBody):
    plan: str = Field(..., min_length=1, max_length=32)
    customer_email: str | None = Field(default=None, alias="customerEmail")
    success_url: str | None = Field(default=None, alias="successUrl")
    cancel_url: str | None = Field(default=None, alias="cancelUrl")


class PortalRequest(_ClientBody):
    customer_id: str | None = Field(default=None, alias="customerId")
    email: str | None = None
    return_url: str | None = Field(default=None, alias="returnUrl")


@router.post("/create-checkout-session")
def create_checkout_session(
    req: CheckoutRequest,
    request: Request,
    factory: CheckoutSessionFactory = Depends(get_checkout_factory),
):
    session = factory.begin_purchase(
        snippet_id=req.snippet_id,
        price=req.amount,
        quantity=req.quantity,
        email=req.customer_email,
        success_url=req.success_url,
        cancel_url=req.cancel_url,
        origin=request.headers.get("origin"),
    )
    return {"url": session.url, "id": session.id}


@router.post("/create-subscription-session")
def create_subscription_session(
    req: SubscriptionCheckoutRequest,
    request: Request,
    factory: CheckoutSessionFactory = Depends(get_checkout_factory),
):
    session = factory.begin_subscription(
        plan=req.plan,
        email=req.customer_email,
        success_url=req.success_url,
        cancel_url=req.cancel_url,
        origin=request.headers.get("origin"),
    )
    return {"url": session.url, "id": session.id}


@router.post("/create-portal-session")
def create_portal_session(
    req: PortalRequest,
    request: Request,
    factory: CheckoutSessionFactory = Depends(get_checkout_factory),
    store: EntitlementStore = Depends(get_store),
):
    customer_id = req.customer_id
    if not customer_id and req.email:
        user = store.users.find_by_email(req.email.strip())
        customer_id = user.stripe_customer_id if user else None
    if not customer_id:
        raise HTTPException(status_code=400, detail="customer_id_or_email_required")
    url = factory.begin_portal(customer_id, return_url=req.return_url, origin=request.headers.get("origin"))
    return {"url": url}


@router.get("/api/billing/status")
def billing_status(user_id: str, store: EntitlementStore = Depends(get_store)):
    return {"ok": True, **EntitlementService(store).subscription_status(user_id)}


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    handler: StripeWebhookHandler = Depends(get_webhook_handler),
):
    return await handler.handle(request, stripe_signature)
