from __future__ import annotations

from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    LOG_LEVEL: str = Field(default="INFO")
    APP_BASE_URL: str = Field(default="")  # storefront origin for checkout redirects

    # Store
    FIRESTORE_PROJECT_ID: str = Field(default="")
    STORE_TIMEOUT_SECONDS: float = Field(default=5.0)

    # Billing
    STRIPE_API_KEY: str = Field(default="")
    STRIPE_WEBHOOK_SECRET: str = Field(default="")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = Field(default=300)
    STRIPE_PRICE_MONTHLY: str = Field(default="")
    STRIPE_PRICE_YEARLY: str = Field(default="")
    CHECKOUT_CURRENCY: str = Field(default="usd")

    def price_map(self) -> Dict[str, str]:
        return {
            "monthly": self.STRIPE_PRICE_MONTHLY,
            "yearly": self.STRIPE_PRICE_YEARLY,
        }

    def price_for_plan(self, plan: str) -> Optional[str]:
        return self.price_map().get(plan) or None

    def plan_for_price(self, price_id: Optional[str]) -> Optional[str]:
        if not price_id:
            return None
        for plan, pid in self.price_map().items():
            if pid and pid == price_id:
                return plan
        return None


settings = Settings()
