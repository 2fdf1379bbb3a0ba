# core/request_context.py
import uuid
from contextvars import ContextVar
from typing import Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def set_request_id(request_id: Optional[str]) -> None:
    _request_id.set(request_id)


def new_request_id() -> str:
    """Create a fresh id and make it current for this context."""
    request_id = uuid.uuid4().hex[:12]
    _request_id.set(request_id)
    return request_id
