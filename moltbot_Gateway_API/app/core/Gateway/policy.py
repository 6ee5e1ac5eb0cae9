from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from loguru import logger

from moltbot_Gateway_API.app.core import config as _config
from moltbot_Gateway_API.app.core.config import settings as app_settings

from .classifier import CommandRules


@dataclass
class GatewayPolicyConfig:
    port: int = _config.DEFAULT_GATEWAY_PORT
    start_command: str = _config.DEFAULT_GATEWAY_START_COMMAND
    startup_timeout_ms: int = _config.DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS
    status_probe_timeout_ms: int = _config.DEFAULT_GATEWAY_STATUS_PROBE_TIMEOUT_MS
    process_match: List[str] = field(default_factory=lambda: list(_config.DEFAULT_GATEWAY_PROCESS_MATCH))
    process_exclude: List[str] = field(default_factory=lambda: list(_config.DEFAULT_GATEWAY_PROCESS_EXCLUDE))
    r2_bucket: str = _config.DEFAULT_R2_BUCKET
    r2_mount_path: str = _config.DEFAULT_R2_MOUNT_PATH
    mount_check_delay_ms: int = _config.DEFAULT_MOUNT_CHECK_DELAY_MS
    restart_settle_ms: int = _config.DEFAULT_RESTART_SETTLE_MS

    @property
    def rules(self) -> CommandRules:
        # Never empty: an include list with no entries matches no process
        include = [s for s in self.process_match if s and s.strip()] or _config.DEFAULT_GATEWAY_PROCESS_MATCH
        return CommandRules.from_lists(include, self.process_exclude)

    @classmethod
    def from_settings(cls) -> "GatewayPolicyConfig":
        def _get_int(key: str, dv: int, allow_zero: bool = False) -> int:
            try:
                v = int(getattr(app_settings, key))  # type: ignore[arg-type]
                if v > 0 or (allow_zero and v == 0):
                    return v
                return dv
            except Exception:
                return dv

        def _get_str(key: str, dv: str) -> str:
            try:
                v = str(getattr(app_settings, key)).strip()
                return v or dv
            except Exception:
                return dv

        def _get_list(key: str, dv: List[str], allow_empty: bool = True) -> List[str]:
            try:
                v = getattr(app_settings, key)
                if isinstance(v, (list, tuple)):
                    out = [str(x).strip() for x in v if str(x).strip()]
                else:
                    out = [t.strip() for t in str(v).split(',') if t.strip()]
            except Exception:
                return list(dv)
            if not out and not allow_empty:
                logger.warning(f"{key} is empty; using defaults {dv}")
                return list(dv)
            return out

        return cls(
            port=_get_int("GATEWAY_PORT", _config.DEFAULT_GATEWAY_PORT),
            start_command=_get_str("GATEWAY_START_COMMAND", _config.DEFAULT_GATEWAY_START_COMMAND),
            startup_timeout_ms=_get_int("GATEWAY_STARTUP_TIMEOUT_MS", _config.DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS),
            status_probe_timeout_ms=_get_int(
                "GATEWAY_STATUS_PROBE_TIMEOUT_MS", _config.DEFAULT_GATEWAY_STATUS_PROBE_TIMEOUT_MS
            ),
            process_match=_get_list("GATEWAY_PROCESS_MATCH", _config.DEFAULT_GATEWAY_PROCESS_MATCH, allow_empty=False),
            process_exclude=_get_list("GATEWAY_PROCESS_EXCLUDE", _config.DEFAULT_GATEWAY_PROCESS_EXCLUDE),
            r2_bucket=_get_str("GATEWAY_R2_BUCKET", _config.DEFAULT_R2_BUCKET),
            r2_mount_path=_get_str("GATEWAY_R2_MOUNT_PATH", _config.DEFAULT_R2_MOUNT_PATH),
            mount_check_delay_ms=_get_int("GATEWAY_MOUNT_CHECK_DELAY_MS", _config.DEFAULT_MOUNT_CHECK_DELAY_MS, allow_zero=True),
            restart_settle_ms=_get_int("GATEWAY_RESTART_SETTLE_MS", _config.DEFAULT_RESTART_SETTLE_MS, allow_zero=True),
        )
