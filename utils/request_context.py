from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_event_id_var: ContextVar[str] = ContextVar("provider_event_id", default="")

def set_request_id(rid: str) -> None:
    _request_id_var.set(rid or "")

def get_request_id() -> str:
    return _request_id_var.get() or ""

def clear_request_id() -> None:
    _request_id_var.set("")

def get_event_id() -> str:
    return _event_id_var.get() or ""

@contextmanager
def bind_event_id(event_id: str) -> Iterator[None]:
    """Tag every log line emitted while one provider event is handled."""
    token = _event_id_var.set(event_id or "")
    try:
        yield
    finally:
        _event_id_var.reset(token)
