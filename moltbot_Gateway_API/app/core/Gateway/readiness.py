from __future__ import annotations

import asyncio

from loguru import logger

from moltbot_Gateway_API.app.core.config import DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS

from .models import GatewayReadinessTimeout, ProcessHandle

# Extra time granted to the handle's own timeout before the outer guard fires
_GUARD_GRACE_SEC = 5.0


async def wait_ready(
    process: ProcessHandle,
    port: int,
    timeout_ms: int = DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS,
) -> None:
    """Wait until ``port`` accepts TCP connections inside the sandbox.

    Raises GatewayReadinessTimeout on timeout or on any probe error. Never retries.
    """
    pid = getattr(process, "id", None)
    logger.info(f"Waiting for gateway process {pid} on port {port} (timeout: {timeout_ms}ms)")
    try:
        await asyncio.wait_for(
            process.wait_for_port(port, mode="tcp", timeout_ms=timeout_ms),
            timeout=timeout_ms / 1000.0 + _GUARD_GRACE_SEC,
        )
    except Exception as e:
        raise GatewayReadinessTimeout(pid, port, timeout_ms) from e
    logger.info(f"Gateway process {pid} is reachable on port {port}")
