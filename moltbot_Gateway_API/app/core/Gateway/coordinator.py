from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from loguru import logger

from moltbot_Gateway_API.app.core.Logging.log_context import log_context, new_attempt_id
from moltbot_Gateway_API.app.core.Metrics import increment_counter, observe_histogram
from moltbot_Gateway_API.app.core.Utils.best_effort import best_effort, truncate

from .env import build_env_vars
from .models import (
    GatewayEnv,
    GatewayProbe,
    GatewayReadinessTimeout,
    GatewayStartupError,
    ProcessHandle,
    ProcessLogs,
    RestartResult,
    Sandbox,
)
from .policy import GatewayPolicyConfig
from .readiness import wait_ready
from .scanner import find_gateway_process
from .storage import mount_storage

EnvBuilder = Callable[[GatewayEnv], Dict[str, str]]
StorageMounter = Callable[[Sandbox, GatewayEnv], Awaitable[Any]]


def _status_label(proc: Any) -> str:
    status = getattr(proc, "status", None)
    return str(status.value if isinstance(status, Enum) else status)


class GatewayStartupCoordinator:
    """Makes sure exactly one gateway process is running and reachable.

    Concurrent ``ensure_gateway`` calls share a single startup attempt: the
    first caller schedules it, later callers await the same task until it
    finishes. The slot is cleared when the attempt ends (success or failure),
    so the next call scans the sandbox again.

    An attempt mounts storage (best effort), reuses an existing gateway if it
    becomes reachable within the startup timeout, and otherwise kills it and
    launches a fresh one. A fresh process that never becomes reachable fails
    the attempt; it is not relaunched.
    """

    def __init__(
        self,
        policy: Optional[GatewayPolicyConfig] = None,
        *,
        env_builder: EnvBuilder = build_env_vars,
        storage_mounter: StorageMounter = mount_storage,
    ) -> None:
        self._policy = policy
        self._env_builder = env_builder
        self._storage_mounter = storage_mounter
        self._startup_in_progress = False
        self._startup_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def policy(self) -> GatewayPolicyConfig:
        return self._policy or GatewayPolicyConfig.from_settings()

    @property
    def in_progress(self) -> bool:
        return self._startup_in_progress

    # -----------------
    # Ensure running
    # -----------------
    async def ensure_gateway(self, sandbox: Sandbox, env: GatewayEnv) -> ProcessHandle:
        """Return a reachable gateway process, starting one if needed."""
        task = self._startup_task
        if task is not None and task.get_loop() is not asyncio.get_running_loop():
            # Left behind by another event loop; it cannot be awaited here
            logger.warning("Discarding startup attempt bound to another event loop")
            self._startup_in_progress = False
            self._startup_task = task = None

        if self._startup_in_progress and task is not None:
            logger.info("[Gateway] Startup already in progress, waiting for existing attempt...")
            increment_counter("gateway_startup_joined_total")
            return await asyncio.shield(task)

        # No suspension point between the check above and claiming the slot
        self._startup_in_progress = True
        task = asyncio.ensure_future(self._run_attempt(sandbox, env))
        task.add_done_callback(_consume_result)
        self._startup_task = task
        return await asyncio.shield(task)

    async def _run_attempt(self, sandbox: Sandbox, env: GatewayEnv) -> ProcessHandle:
        policy = self.policy
        started = time.perf_counter()
        outcome = "failed"
        try:
            with log_context(gateway_attempt=new_attempt_id(), gw_component="coordinator"):
                process, outcome = await self._reuse_or_launch(sandbox, env, policy)
                return process
        finally:
            # Only release the slot this attempt still owns
            if self._startup_task is asyncio.current_task():
                self._startup_in_progress = False
                self._startup_task = None
            increment_counter("gateway_startup_attempts_total", labels={"outcome": outcome})
            observe_histogram(
                "gateway_startup_duration_seconds",
                time.perf_counter() - started,
                labels={"outcome": outcome},
            )

    async def _reuse_or_launch(
        self,
        sandbox: Sandbox,
        env: GatewayEnv,
        policy: GatewayPolicyConfig,
    ) -> Tuple[ProcessHandle, str]:
        # R2 is a backup the start script restores from; not a prerequisite
        await best_effort("mount_storage", lambda: self._storage_mounter(sandbox, env))

        existing = await find_gateway_process(sandbox, policy.rules)
        if existing is not None:
            logger.info(f"Found existing gateway process: {existing.id} status: {_status_label(existing)}")
            try:
                # A "running" process may still be booting, so use the full startup timeout
                await wait_ready(existing, policy.port, policy.startup_timeout_ms)
                return existing, "reused"
            except GatewayReadinessTimeout:
                logger.warning(
                    f"Existing process {existing.id} not reachable after {policy.startup_timeout_ms}ms, "
                    "killing and restarting..."
                )
                await best_effort("kill_process", existing.kill)
                increment_counter("gateway_restarts_total", labels={"reason": "not_reachable"})

        process = await self._launch(sandbox, env, policy)
        await self._wait_for_new_process(process, policy)
        return process, "launched"

    async def _launch(self, sandbox: Sandbox, env: GatewayEnv, policy: GatewayPolicyConfig) -> ProcessHandle:
        env_vars = self._env_builder(env)
        command = policy.start_command
        logger.info(f"Starting new gateway process with command: {command}")
        logger.info(f"Environment vars being passed: {sorted(env_vars.keys())}")
        try:
            process = await sandbox.start_process(command, env=env_vars if env_vars else None)
        except Exception as e:
            logger.error(f"Failed to start gateway process: {e}")
            raise
        logger.info(f"Process started with id: {process.id} status: {_status_label(process)}")
        return process

    async def _wait_for_new_process(self, process: ProcessHandle, policy: GatewayPolicyConfig) -> None:
        try:
            await wait_ready(process, policy.port, policy.startup_timeout_ms)
        except GatewayReadinessTimeout as timeout_err:
            logger.error(f"[Gateway] wait_for_port failed after {policy.startup_timeout_ms}ms: {timeout_err.__cause__!r}")
            try:
                logs = ProcessLogs.coerce(await process.get_logs())
            except Exception as log_err:
                logger.error(f"[Gateway] Failed to get logs: {log_err}")
                raise timeout_err
            logger.error(f"[Gateway] Process stdout: {truncate(logs.stdout, 1000) or '(empty)'}")
            logger.error(f"[Gateway] Process stderr: {truncate(logs.stderr, 1000) or '(empty)'}")
            raise GatewayStartupError(
                process.id,
                policy.port,
                policy.startup_timeout_ms,
                stdout=logs.stdout,
                stderr=logs.stderr,
            ) from timeout_err

        logger.info("[Gateway] Gateway is ready!")
        raw = await best_effort("get_logs", process.get_logs, level="DEBUG")
        if raw is not None:
            logs = ProcessLogs.coerce(raw)
            if logs.stdout:
                logger.info(f"[Gateway] startup stdout: {truncate(logs.stdout, 500)}")
            if logs.stderr:
                logger.info(f"[Gateway] startup stderr: {truncate(logs.stderr, 500)}")

    # -----------------
    # Status / restart
    # -----------------
    async def probe_gateway(self, sandbox: Sandbox, timeout_ms: Optional[int] = None) -> GatewayProbe:
        """Report gateway state without starting anything."""
        policy = self.policy
        process = await find_gateway_process(sandbox, policy.rules)
        if process is None:
            return GatewayProbe(status="not_running")
        if timeout_ms is None:
            timeout_ms = policy.status_probe_timeout_ms
        try:
            await wait_ready(process, policy.port, timeout_ms)
        except GatewayReadinessTimeout:
            return GatewayProbe(status="not_responding", process_id=process.id)
        return GatewayProbe(status="running", process_id=process.id)

    async def restart_gateway(self, sandbox: Sandbox, env: GatewayEnv) -> RestartResult:
        """Kill the current gateway (if any) and start a new one in the background."""
        policy = self.policy
        existing = await find_gateway_process(sandbox, policy.rules)
        previous_id = existing.id if existing is not None else None
        if existing is not None:
            logger.info(f"Killing existing gateway process: {existing.id}")
            await best_effort("kill_process", existing.kill)
            increment_counter("gateway_restarts_total", labels={"reason": "requested"})
            # Let the old process release the port before scanning again
            await asyncio.sleep(max(0, policy.restart_settle_ms) / 1000.0)

        task = asyncio.ensure_future(self._ensure_in_background(sandbox, env))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        message = (
            "Gateway restart initiated"
            if existing is not None
            else "No existing process found, starting new instance"
        )
        return RestartResult(success=True, message=message, previous_process_id=previous_id)

    async def _ensure_in_background(self, sandbox: Sandbox, env: GatewayEnv) -> None:
        try:
            await self.ensure_gateway(sandbox, env)
        except Exception as e:
            logger.error(f"Background gateway start failed: {e}")

    async def wait_background(self) -> None:
        """Await background restarts scheduled so far (used on shutdown and in tests)."""
        pending = list(self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


def _consume_result(task: asyncio.Task) -> None:
    # Mark the outcome as retrieved when every waiter was cancelled
    if not task.cancelled():
        task.exception()


_COORDINATOR: Optional[GatewayStartupCoordinator] = None


def get_gateway_coordinator() -> GatewayStartupCoordinator:
    global _COORDINATOR
    if _COORDINATOR is None:
        _COORDINATOR = GatewayStartupCoordinator()
    return _COORDINATOR


def reset_gateway_coordinator(coordinator: Optional[GatewayStartupCoordinator] = None) -> GatewayStartupCoordinator:
    """Replace the process-wide coordinator (fresh instance by default)."""
    global _COORDINATOR
    _COORDINATOR = coordinator or GatewayStartupCoordinator()
    return _COORDINATOR


async def ensure_gateway(sandbox: Sandbox, env: GatewayEnv) -> ProcessHandle:
    return await get_gateway_coordinator().ensure_gateway(sandbox, env)


async def probe_gateway(sandbox: Sandbox, timeout_ms: Optional[int] = None) -> GatewayProbe:
    return await get_gateway_coordinator().probe_gateway(sandbox, timeout_ms)


async def restart_gateway(sandbox: Sandbox, env: GatewayEnv) -> RestartResult:
    return await get_gateway_coordinator().restart_gateway(sandbox, env)
