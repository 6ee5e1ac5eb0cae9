from __future__ import annotations

from typing import Optional

from loguru import logger

from moltbot_Gateway_API.app.core.Utils.best_effort import best_effort

from .classifier import CommandRules, is_gateway_process
from .models import ProcessHandle, Sandbox, process_summary


async def find_gateway_process(sandbox: Sandbox, rules: Optional[CommandRules] = None) -> Optional[ProcessHandle]:
    """Return the first starting/running gateway process, or None.

    A failed listing is treated as an empty one.
    """
    if rules is None:
        from .policy import GatewayPolicyConfig

        rules = GatewayPolicyConfig.from_settings().rules
    processes = await best_effort("list_processes", sandbox.list_processes, default=[])
    processes = list(processes or [])
    logger.debug(f"Sandbox processes: {process_summary(processes)}")
    for proc in processes:
        if is_gateway_process(proc, rules):
            return proc
    return None
