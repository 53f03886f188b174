"""Per-request context: request id and tenant, readable from any log call."""

from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    org_id: str | None = None


_context: ContextVar[RequestContext | None] = ContextVar("execgraph_request_context", default=None)


def get_request_id() -> str | None:
    context = _context.get()
    return context.request_id if context else None


def get_org_id() -> str | None:
    context = _context.get()
    return context.org_id if context else None


def bind_request_context(request_id: str | None, org_id: str | None = None) -> Token:
    """Bind a context for the current task, generating a request id when none is given."""
    return _context.set(RequestContext(request_id=request_id or uuid4().hex, org_id=org_id or None))


def reset_request_context(token: Token) -> None:
    _context.reset(token)
