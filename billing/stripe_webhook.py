from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request
from starlette.concurrency import run_in_threadpool

from billing.errors import InvalidEventPayload, InvalidSignature, WebhookProcessingError
from billing.event_router import EventRouter
from billing.verifier import EventVerifier

log = logging.getLogger("snippets.webhook")


class StripeWebhookHandler:
    def __init__(self, verifier: EventVerifier, router: EventRouter):
        self.verifier = verifier
        self.router = router

    async def handle(self, request: Request, stripe_signature: str | None) -> Dict[str, Any]:
        payload = await request.body()

        try:
            event = self.verifier.verify(payload, stripe_signature)
        except InvalidSignature as e:
            raise HTTPException(status_code=400, detail=e.detail)
        except InvalidEventPayload as e:
            # Authenticated but unusable; redelivery would fail the same way.
            log.error(
                "webhook_payload_invalid",
                extra={"extra": {"event": "webhook_payload_invalid", "errors": e.errors, "bytes": len(payload)}},
                exc_info=True,
            )
            return {"received": True}

        try:
            await run_in_threadpool(self.router.dispatch, event)
        except WebhookProcessingError:
            raise HTTPException(status_code=500, detail="webhook_processing_failed")

        return {"received": True}
