from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, runtime_checkable


# Worker environment bindings (secrets, tokens, flags); opaque to the coordinator
GatewayEnv = Mapping[str, Optional[str]]


class ProcessStatus(str, Enum):
    starting = "starting"
    running = "running"
    completed = "completed"
    failed = "failed"
    killed = "killed"
    error = "error"


ALIVE_STATUSES = frozenset({ProcessStatus.starting.value, ProcessStatus.running.value})


@dataclass
class ProcessLogs:
    stdout: str = ""
    stderr: str = ""

    @classmethod
    def coerce(cls, raw: Any) -> "ProcessLogs":
        """Normalize whatever a sandbox returns from get_logs()."""
        if isinstance(raw, ProcessLogs):
            return raw
        if raw is None:
            return cls()
        if isinstance(raw, Mapping):
            out, err = raw.get("stdout"), raw.get("stderr")
        else:
            out, err = getattr(raw, "stdout", None), getattr(raw, "stderr", None)
        return cls(stdout=str(out or ""), stderr=str(err or ""))


@runtime_checkable
class ProcessHandle(Protocol):
    """One OS process inside the sandbox, as exposed by the sandbox SDK."""

    id: str
    command: str
    status: Any

    async def wait_for_port(self, port: int, *, mode: str = "tcp", timeout_ms: int) -> None:
        ...

    async def get_logs(self) -> Any:
        ...

    async def kill(self) -> None:
        ...


@runtime_checkable
class Sandbox(Protocol):
    """Capability handle to the managed execution sandbox."""

    async def list_processes(self) -> Sequence[ProcessHandle]:
        ...

    async def start_process(self, command: str, *, env: Optional[Dict[str, str]] = None) -> ProcessHandle:
        ...


@runtime_checkable
class BucketMounter(Protocol):
    """Sandbox capability to mount an S3-compatible bucket at a path."""

    async def mount_bucket(
        self,
        bucket: str,
        mount_path: str,
        *,
        endpoint: str,
        credentials: Dict[str, str],
    ) -> None:
        ...


@dataclass
class GatewayProbe:
    status: str  # not_running | running | not_responding
    process_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "running"


@dataclass
class RestartResult:
    success: bool
    message: str
    previous_process_id: Optional[str] = None


class GatewayError(Exception):
    """Base class for gateway supervision failures."""


class GatewayReadinessTimeout(GatewayError):
    def __init__(self, process_id: Optional[str], port: int, timeout_ms: int, message: Optional[str] = None) -> None:
        super().__init__(
            message
            or f"Gateway process {process_id} not reachable on port {port} within {timeout_ms}ms"
        )
        self.process_id = process_id
        self.port = port
        self.timeout_ms = timeout_ms


class GatewayStartupError(GatewayError):
    UNKNOWN_ERROR = "Unknown error"

    def __init__(
        self,
        process_id: Optional[str],
        port: int,
        timeout_ms: int,
        *,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        detail = stderr or stdout or self.UNKNOWN_ERROR
        seconds = int(timeout_ms / 1000)
        super().__init__(
            f"Gateway failed to start on port {port} within {seconds} seconds. Error: {detail}"
        )
        self.process_id = process_id
        self.port = port
        self.timeout_ms = timeout_ms
        self.stdout = stdout
        self.stderr = stderr


def process_summary(processes: Sequence[Any]) -> List[Dict[str, Any]]:
    """Small JSON-friendly view of a listing, for debug logs."""
    out: List[Dict[str, Any]] = []
    for proc in processes:
        status = getattr(proc, "status", None)
        out.append({
            "id": getattr(proc, "id", None),
            "command": getattr(proc, "command", None),
            "status": status.value if isinstance(status, Enum) else status,
        })
    return out
