from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class AccessType(str, Enum):
    PURCHASE = "purchase"
    SUBSCRIPTION = "subscription"


class _Doc(BaseModel):
    model_config = ConfigDict(extra="ignore")


class User(_Doc):
    user_id: str
    email: str = ""
    subscription_status: Optional[str] = None
    subscription_plan: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None


class Purchase(_Doc):
    user_id: str
    snippet_id: str
    amount: float
    stripe_session_id: str
    status: str = "completed"

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump()


class AccessGrant(_Doc):
    user_id: str
    snippet_id: str
    access_type: AccessType

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class SubscriptionRecord(_Doc):
    stripe_subscription_id: str
    user_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    status: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    price_id: Optional[str] = None
    plan: Optional[str] = None
    canceled_at: Optional[datetime] = None

    def to_doc(self) -> Dict[str, Any]:
        # Only the fields this event carried; merge keeps the rest.
        return self.model_dump(exclude_unset=True)


class Snippet(_Doc):
    snippet_id: str
    title: str = ""
    price: float = 0.0
    category: str = ""
    is_published: bool = False
