from __future__ import annotations


class InvalidSignature(Exception):
    """Inbound webhook could not be authenticated. Callers must not say why."""

    def __init__(self, detail: str = "invalid_signature"):
        super().__init__(detail)
        self.detail = detail


class InvalidEventPayload(Exception):
    """Authenticated body that does not parse as a known event shape."""

    def __init__(self, errors: int = 0):
        super().__init__("invalid_payload")
        self.errors = errors


class UnresolvableUser(Exception):
    def __init__(self, reason: str, **context):
        super().__init__(reason)
        self.reason = reason
        self.context = context


class DuplicateEvent(Exception):
    """An idempotency key was already recorded; the effect has been applied."""

    def __init__(self, key: str, reason: str = "already_processed"):
        super().__init__(f"{reason}:{key}")
        self.key = key
        self.reason = reason


class StoreError(Exception):
    def __init__(self, op: str, message: str = ""):
        super().__init__(f"{op}: {message}" if message else op)
        self.op = op


class StoreReadFailure(StoreError):
    pass


class StoreWriteFailure(StoreError):
    pass


class StoreTimeout(StoreError):
    pass


class WebhookProcessingError(Exception):
    """Raised to make the provider redeliver (HTTP 5xx)."""


class InvalidPlan(Exception):
    def __init__(self, plan: str):
        super().__init__("invalid_plan_or_price_not_configured")
        self.plan = plan


class CheckoutError(Exception):
    pass
