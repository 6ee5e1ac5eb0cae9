from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

from loguru import logger

from moltbot_Gateway_API.app.core.Metrics import increment_counter

T = TypeVar("T")


async def best_effort(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    default: Optional[T] = None,
    *,
    level: str = "WARNING",
) -> Optional[T]:
    """Await ``fn()`` and turn any failure into a logged no-op.

    Only ``Exception`` is caught, so task cancellation still propagates.
    Returns ``default`` when the operation fails.
    """
    try:
        return await fn()
    except Exception as e:
        logger.log(level, f"{operation} failed (ignored): {e!r}")
        increment_counter("gateway_soft_failures_total", labels={"operation": operation})
        return default


def truncate(text: Any, limit: int) -> str:
    """Return at most ``limit`` characters of ``text`` ('' for None)."""
    if not text:
        return ""
    s = str(text)
    return s[:limit]
