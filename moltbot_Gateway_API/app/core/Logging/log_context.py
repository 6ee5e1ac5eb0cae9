"""
Lightweight logging context helpers for propagating gateway attempt identifiers.

Usage:

    from moltbot_Gateway_API.app.core.Logging.log_context import log_context, new_attempt_id

    with log_context(gateway_attempt=new_attempt_id(), gw_component="coordinator") as log:
        log.info("Starting gateway")
        ...

The context manager both contextualizes the base logger (so nested logs inherit
the fields) and returns a bound logger for convenience.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Any
import uuid

from loguru import logger


def new_attempt_id() -> str:
    """Return a short opaque identifier for one startup attempt."""
    return uuid.uuid4().hex[:12]


def new_request_id() -> str:
    """Return a new opaque request identifier (hex)."""
    return uuid.uuid4().hex


@contextmanager
def log_context(**fields: Any) -> Iterator[Any]:
    """Context manager that sets structured logging fields and yields a bound logger.

    - Adds fields to the logger context (via logger.contextualize) so that any
      logs emitted inside the context inherit them. Loguru stores the context
      in a ContextVar, so it follows the asyncio task that entered it.
    - Yields a logger bound with the same fields for direct use.
    """
    clean = {k: v for k, v in fields.items() if v is not None}
    with logger.contextualize(**clean):
        bound = logger.bind(**clean)
        yield bound


def ensure_request_id(request: Any) -> str:
    """Return a request_id from a FastAPI Request or synthesize one.

    - Prefers `request.state.request_id`.
    - Falls back to `X-Request-ID` header if present.
    - Generates a new request_id if none is found and attaches it to `request.state`.
    """
    try:
        req_id = getattr(getattr(request, "state", None), "request_id", None)
        if not req_id:
            headers = getattr(request, "headers", {}) or {}
            req_id = headers.get("X-Request-ID") or headers.get("x-request-id")
        if not req_id:
            req_id = new_request_id()
            try:
                setattr(request.state, "request_id", req_id)  # type: ignore[attr-defined]
            except Exception:
                pass
        return str(req_id)
    except Exception:
        return new_request_id()
