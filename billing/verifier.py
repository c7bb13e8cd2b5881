from __future__ import annotations

import logging
from typing import Optional

import stripe
from pydantic import ValidationError

from billing.errors import InvalidEventPayload, InvalidSignature
from models.events import ProviderEvent, parse_event

log = logging.getLogger("snippets.stripe")


class EventVerifier:
    """Authenticates a webhook body against the endpoint signing secret."""

    def __init__(self, secret: str, tolerance: int = 300):
        self.secret = secret
        self.tolerance = tolerance

    def verify(self, payload: bytes, signature: Optional[str]) -> ProviderEvent:
        # Signature is computed over the exact bytes received; never re-serialize.
        if not self.secret or not signature:
            log.warning("stripe signature verify failed", extra={"extra": {"error": "missing_secret_or_header"}})
            raise InvalidSignature()

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.secret,
                tolerance=self.tolerance,
            )
        except Exception as e:
            log.warning("stripe signature verify failed", extra={"extra": {"error_type": type(e).__name__}})
            raise InvalidSignature() from e

        try:
            return parse_event(payload)
        except ValidationError as e:
            raise InvalidEventPayload(e.error_count()) from e
