from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Optional

import pytest


class FakeProcess:
    """In-memory stand-in for a sandbox process handle."""

    def __init__(
        self,
        id: str,
        command: str,
        status: str = "running",
        *,
        ready: bool = True,
        gate: Optional[asyncio.Event] = None,
        hang: bool = False,
        logs: Optional[Dict[str, str]] = None,
        logs_error: Optional[Exception] = None,
        kill_error: Optional[Exception] = None,
    ) -> None:
        self.id = id
        self.command = command
        self.status = status
        self.ready = ready
        self.gate = gate
        self.hang = hang
        self.logs = logs if logs is not None else {"stdout": "", "stderr": ""}
        self.logs_error = logs_error
        self.kill_error = kill_error
        self.wait_calls: List[tuple] = []
        self.log_calls = 0
        self.kill_calls = 0

    async def wait_for_port(self, port: int, *, mode: str = "tcp", timeout_ms: int) -> None:
        self.wait_calls.append((port, mode, timeout_ms))
        if self.hang:
            await asyncio.Event().wait()
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if not self.ready:
            raise TimeoutError(f"port {port} not reachable after {timeout_ms}ms")

    async def get_logs(self) -> Dict[str, str]:
        self.log_calls += 1
        if self.logs_error is not None:
            raise self.logs_error
        return dict(self.logs)

    async def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        self.status = "killed"


class FakeSandbox:
    """In-memory sandbox: a process table plus start/mount recording."""

    def __init__(
        self,
        processes: Optional[List[FakeProcess]] = None,
        *,
        spawn: Optional[Callable[[str, Optional[Dict[str, str]]], FakeProcess]] = None,
        list_error: Optional[Exception] = None,
        start_error: Optional[Exception] = None,
        mounted: bool = False,
        mount_error: Optional[Exception] = None,
    ) -> None:
        self.processes: List[FakeProcess] = list(processes or [])
        self._ids = itertools.count(1)
        self.spawn = spawn or (lambda command, env: FakeProcess(f"new-{next(self._ids)}", command, "starting"))
        self.list_error = list_error
        self.start_error = start_error
        self.mounted = mounted
        self.mount_error = mount_error
        self.list_calls = 0
        self.start_calls: List[tuple] = []
        self.mount_checks = 0
        self.mount_calls: List[Dict[str, Any]] = []
        self.events: List[str] = []

    async def list_processes(self) -> List[FakeProcess]:
        self.list_calls += 1
        self.events.append("list")
        await asyncio.sleep(0)
        if self.list_error is not None:
            raise self.list_error
        return list(self.processes)

    async def start_process(self, command: str, *, env: Optional[Dict[str, str]] = None) -> FakeProcess:
        await asyncio.sleep(0)
        if command.startswith("mount |"):
            self.mount_checks += 1
            out = "s3fs on /data/moltbot type fuse.s3fs (rw)\n" if self.mounted else ""
            return FakeProcess("mount-check", command, "completed", logs={"stdout": out, "stderr": ""})
        self.events.append("start")
        self.start_calls.append((command, env))
        if self.start_error is not None:
            raise self.start_error
        proc = self.spawn(command, env)
        self.processes.append(proc)
        return proc

    async def mount_bucket(self, bucket: str, mount_path: str, *, endpoint: str, credentials: Dict[str, str]) -> None:
        self.mount_calls.append(
            {"bucket": bucket, "mount_path": mount_path, "endpoint": endpoint, "credentials": credentials}
        )
        await asyncio.sleep(0)
        if self.mount_error is not None:
            raise self.mount_error
        self.mounted = True


@pytest.fixture()
def make_process():
    return FakeProcess


@pytest.fixture()
def make_sandbox():
    return FakeSandbox


@pytest.fixture()
def policy():
    from moltbot_Gateway_API.app.core.Gateway.policy import GatewayPolicyConfig

    return GatewayPolicyConfig(mount_check_delay_ms=0, restart_settle_ms=0)


@pytest.fixture()
def mount_calls() -> List[tuple]:
    return []


@pytest.fixture()
def coordinator(policy, mount_calls):
    """Coordinator with a recording no-op storage mounter."""
    from moltbot_Gateway_API.app.core.Gateway.coordinator import GatewayStartupCoordinator

    async def _mount(sandbox, env):
        mount_calls.append((sandbox, env))
        events = getattr(sandbox, "events", None)
        if events is not None:
            events.append("mount")
        return False

    return GatewayStartupCoordinator(policy, storage_mounter=_mount)
