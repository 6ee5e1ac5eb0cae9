"""Command-string rules that tell the gateway process apart from CLI invocations.

The gateway and short-lived CLI commands share a program name ("clawdbot
gateway" vs "clawdbot devices list"), so matching is an include list plus an
exclude list, both supplied by configuration.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Tuple

from .models import ALIVE_STATUSES


@dataclass(frozen=True)
class CommandRules:
    include: Tuple[str, ...]
    exclude: Tuple[str, ...] = ()

    @classmethod
    def from_lists(cls, include: Iterable[str], exclude: Iterable[str] = ()) -> "CommandRules":
        return cls(
            include=tuple(s for s in include if s),
            exclude=tuple(s for s in exclude if s),
        )


def is_gateway_command(command: str, rules: CommandRules) -> bool:
    cmd = command or ""
    if not any(s in cmd for s in rules.include):
        return False
    return not any(s in cmd for s in rules.exclude)


def is_alive_status(status: Any) -> bool:
    value = status.value if isinstance(status, Enum) else status
    return str(value) in ALIVE_STATUSES


def is_gateway_process(proc: Any, rules: CommandRules) -> bool:
    return is_gateway_command(getattr(proc, "command", ""), rules) and is_alive_status(getattr(proc, "status", None))
