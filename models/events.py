"""
Typed view of the Stripe webhook events this service reconciles.

`parse_event` is the only place that looks at raw JSON. Handlers work on the
variants below and never probe nested dicts themselves.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout.completed"
    INVOICE_PAID = "invoice.paid"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_DELETED = "subscription.deleted"
    UNKNOWN = "unknown"


# Stripe event type -> kind. Exact match only; anything else is UNKNOWN.
STRIPE_EVENT_KINDS: Dict[str, EventKind] = {
    "checkout.session.completed": EventKind.CHECKOUT_COMPLETED,
    "invoice.paid": EventKind.INVOICE_PAID,
    "invoice.payment_succeeded": EventKind.INVOICE_PAID,
    "customer.subscription.updated": EventKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventKind.SUBSCRIPTION_DELETED,
}


def from_epoch(ts: Optional[int]) -> Optional[datetime]:
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


def _expandable_id(v: Any) -> Any:
    # Stripe fields like `customer` may arrive expanded into full objects.
    if isinstance(v, dict):
        return v.get("id")
    return v


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


# -------- checkout.session --------
class CheckoutMetadata(_Payload):
    snippet_id: Optional[str] = None
    customer_email: Optional[str] = None
    plan: Optional[str] = None

    @field_validator("snippet_id", "customer_email", "plan", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip() or None
        return v


class CustomerDetails(_Payload):
    email: Optional[str] = None


class CheckoutSession(_Payload):
    id: str
    mode: Optional[str] = None
    amount_total: Optional[int] = None
    customer: Optional[str] = None
    subscription: Optional[str] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None
    metadata: CheckoutMetadata = Field(default_factory=CheckoutMetadata)

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def expand_ids(cls, v: Any) -> Any:
        return _expandable_id(v)

    @field_validator("metadata", mode="before")
    @classmethod
    def null_metadata(cls, v: Any) -> Any:
        return v or {}

    @property
    def payer_email(self) -> Optional[str]:
        details = self.customer_details.email if self.customer_details else None
        return self.metadata.customer_email or details or self.customer_email or None

    @property
    def is_subscription(self) -> bool:
        if self.mode:
            return self.mode == "subscription"
        return bool(self.metadata.plan) and not self.metadata.snippet_id

    @property
    def amount_major(self) -> float:
        return round((self.amount_total or 0) / 100, 2)


# -------- invoice --------
class Period(_Payload):
    start: Optional[int] = None
    end: Optional[int] = None


class InvoiceLine(_Payload):
    period: Optional[Period] = None


class InvoiceLines(_Payload):
    data: List[InvoiceLine] = Field(default_factory=list)


class SubscriptionDetails(_Payload):
    subscription: Optional[str] = None

    @field_validator("subscription", mode="before")
    @classmethod
    def expand_ids(cls, v: Any) -> Any:
        return _expandable_id(v)


class InvoiceParent(_Payload):
    subscription_details: Optional[SubscriptionDetails] = None


class Invoice(_Payload):
    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    lines: InvoiceLines = Field(default_factory=InvoiceLines)
    parent: Optional[InvoiceParent] = None

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def expand_ids(cls, v: Any) -> Any:
        return _expandable_id(v)

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        if self.parent and self.parent.subscription_details:
            return self.parent.subscription_details.subscription
        return None

    @property
    def period_end(self) -> Optional[datetime]:
        if not self.lines.data or not self.lines.data[0].period:
            return None
        return from_epoch(self.lines.data[0].period.end)


# -------- subscription --------
class Recurring(_Payload):
    interval: Optional[str] = None


class Price(_Payload):
    id: Optional[str] = None
    recurring: Optional[Recurring] = None


class SubscriptionItem(_Payload):
    price: Optional[Price] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class SubscriptionItems(_Payload):
    data: List[SubscriptionItem] = Field(default_factory=list)


class Subscription(_Payload):
    id: str
    customer: Optional[str] = None
    status: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    items: SubscriptionItems = Field(default_factory=SubscriptionItems)

    @field_validator("customer", mode="before")
    @classmethod
    def expand_ids(cls, v: Any) -> Any:
        return _expandable_id(v)

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items.data[0] if self.items.data else None

    @property
    def period_start(self) -> Optional[datetime]:
        item = self.first_item
        return from_epoch(self.current_period_start or (item.current_period_start if item else None))

    @property
    def period_end(self) -> Optional[datetime]:
        item = self.first_item
        return from_epoch(self.current_period_end or (item.current_period_end if item else None))

    @property
    def price_id(self) -> Optional[str]:
        item = self.first_item
        return item.price.id if item and item.price else None

    @property
    def interval(self) -> Optional[str]:
        item = self.first_item
        if item and item.price and item.price.recurring:
            return item.price.recurring.interval
        return None


# -------- event variants --------
class _Event(_Payload):
    id: str
    raw_type: str


class CheckoutCompleted(_Event):
    kind: Literal[EventKind.CHECKOUT_COMPLETED] = EventKind.CHECKOUT_COMPLETED
    session: CheckoutSession


class InvoicePaid(_Event):
    kind: Literal[EventKind.INVOICE_PAID] = EventKind.INVOICE_PAID
    invoice: Invoice


class SubscriptionUpdated(_Event):
    kind: Literal[EventKind.SUBSCRIPTION_UPDATED] = EventKind.SUBSCRIPTION_UPDATED
    subscription: Subscription


class SubscriptionDeleted(_Event):
    kind: Literal[EventKind.SUBSCRIPTION_DELETED] = EventKind.SUBSCRIPTION_DELETED
    subscription: Subscription


class UnknownEvent(_Event):
    kind: Literal[EventKind.UNKNOWN] = EventKind.UNKNOWN


ProviderEvent = Union[CheckoutCompleted, InvoicePaid, SubscriptionUpdated, SubscriptionDeleted, UnknownEvent]


class _EventData(_Payload):
    object: Dict[str, Any] = Field(default_factory=dict)


class _Envelope(_Payload):
    id: str
    type: str
    data: _EventData = Field(default_factory=_EventData)


def parse_event(payload: Union[bytes, str]) -> ProviderEvent:
    """Validate a raw webhook body into one event variant.

    Raises pydantic.ValidationError when the body is not a Stripe event or a
    recognised event's object is missing required fields.
    """
    env = _Envelope.model_validate_json(payload)
    kind = STRIPE_EVENT_KINDS.get(env.type, EventKind.UNKNOWN)
    obj = env.data.object
    if kind is EventKind.CHECKOUT_COMPLETED:
        return CheckoutCompleted(id=env.id, raw_type=env.type, session=CheckoutSession.model_validate(obj))
    if kind is EventKind.INVOICE_PAID:
        return InvoicePaid(id=env.id, raw_type=env.type, invoice=Invoice.model_validate(obj))
    if kind is EventKind.SUBSCRIPTION_UPDATED:
        return SubscriptionUpdated(id=env.id, raw_type=env.type, subscription=Subscription.model_validate(obj))
    if kind is EventKind.SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(id=env.id, raw_type=env.type, subscription=Subscription.model_validate(obj))
    return UnknownEvent(id=env.id, raw_type=env.type)
