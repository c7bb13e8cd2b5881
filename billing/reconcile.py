from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from billing.errors import StoreWriteFailure, UnresolvableUser
from models.entities import User
from repos.user_repo import UserRepository

Clock = Callable[[], datetime]

# Handler outcomes, logged once per event by the router.
OUTCOME_APPLIED = "applied"
OUTCOME_IGNORED = "ignored"
OUTCOME_FAILED = "failed"
OUTCOME_PARTIAL = "partial"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_user_by_email(users: UserRepository, email: Optional[str]) -> User:
    if not email:
        raise UnresolvableUser("missing_email")
    user = users.find_by_email(email.strip())
    if user is None:
        raise UnresolvableUser("no_user_for_email")
    return user


def resolve_user_by_customer(users: UserRepository, customer_id: Optional[str]) -> User:
    if not customer_id:
        raise UnresolvableUser("missing_customer_id")
    user = users.find_by_customer_id(customer_id)
    if user is None:
        raise UnresolvableUser("no_user_for_customer", customer=customer_id)
    return user


def write_outcome(*results: bool) -> str:
    """Summarize attempt_write results: all ok, some ok, or none ok."""
    if all(results):
        return OUTCOME_APPLIED
    if any(results):
        return OUTCOME_PARTIAL
    return OUTCOME_FAILED


def attempt_write(log: logging.Logger, op: str, fn: Callable[[], Any], **context) -> bool:
    """Run one store write; a failed write is logged and reported, not raised.

    StoreTimeout and DuplicateEvent still propagate.
    """
    try:
        fn()
        return True
    except StoreWriteFailure as e:
        log.error(
            "store_write_failed",
            extra={"extra": {"event": "store_write_failed", "op": op, "store_op": e.op, **context}},
            exc_info=True,
        )
        return False
