# config.py
# Description: Configuration settings for the moltbot gateway supervisor.
#
# Imports
import configparser
import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, List, Optional
from dotenv import load_dotenv


#
# 3rd-party Libraries
from loguru import logger
from collections.abc import MutableMapping

# Guard logging during module import so Loguru does not emit records before
# the application configured its sinks. Messages emitted before `_LOGGER_READY`
# flips to True are buffered and flushed once initialization completes.
_LOGGER_READY = False
_STARTUP_LOG_BUFFER: list[tuple[str, str, dict[str, Any]]] = []


def _buffered_log(level: str, message: str, **kwargs: Any) -> None:
    if _LOGGER_READY:
        logger.log(level, message, **kwargs)
    else:
        _STARTUP_LOG_BUFFER.append((level, message, kwargs))


def _log_info(message: str, **kwargs: Any) -> None:
    _buffered_log("INFO", message, **kwargs)


def _log_warning(message: str, **kwargs: Any) -> None:
    _buffered_log("WARNING", message, **kwargs)


def _log_debug(message: str, **kwargs: Any) -> None:
    _buffered_log("DEBUG", message, **kwargs)


def _flush_startup_logs() -> None:
    global _STARTUP_LOG_BUFFER
    for level, message, kwargs in _STARTUP_LOG_BUFFER:
        logger.log(level, message, **kwargs)
    _STARTUP_LOG_BUFFER = []


def _project_root() -> Path:
    # __file__ is .../moltbot_Gateway_API/app/core/config.py
    return Path(__file__).resolve().parent.parent.parent


def _load_env_files_early() -> None:
    """Load .env files before any environment reads.

    Safe and no-op if the files do not exist. Keeping override=False ensures
    explicit environment variables are not replaced.
    """
    try:
        project_root = _project_root()
        candidate_env_paths = [
            project_root / '.env',
            project_root / '.ENV',
            project_root / 'Config_Files' / '.env',
            project_root / 'Config_Files' / '.ENV',
        ]
        loaded_any = False
        for p in candidate_env_paths:
            try:
                if p.exists():
                    _log_info(f"Early loading environment variables from: {str(p)}")
                    load_dotenv(dotenv_path=str(p), override=False)
                    loaded_any = True
            except Exception:
                # Continue trying other candidates
                pass
        if not loaded_any:
            _log_debug("Early .env load: no candidate files found; relying on process env")
    except Exception:
        # Never fail early due to env file loading issues
        pass

#
########################################################################################################################
#
# Functions:

# --- Constants ---
# API version prefix for all endpoints
API_V1_PREFIX = "/api/v1"

# Default gateway TCP port inside the sandbox
DEFAULT_GATEWAY_PORT = 18789

# Canonical startup script launched for a fresh gateway
DEFAULT_GATEWAY_START_COMMAND = "/usr/local/bin/start-moltbot.sh"

# Readiness budget for gateway boot (includes restore-from-backup in the start script)
DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS = 120_000

# Short probe used by the status endpoint
DEFAULT_GATEWAY_STATUS_PROBE_TIMEOUT_MS = 5_000

# Command substrings identifying the gateway. The CLI is still named "clawdbot"
# until upstream renames it, so these are configurable.
DEFAULT_GATEWAY_PROCESS_MATCH = ["start-moltbot.sh", "clawdbot gateway"]
DEFAULT_GATEWAY_PROCESS_EXCLUDE = ["clawdbot devices", "clawdbot --version"]

# Persistent storage (R2 bucket mounted through s3fs)
DEFAULT_R2_BUCKET = "moltbot-data"
DEFAULT_R2_MOUNT_PATH = "/data/moltbot"
DEFAULT_MOUNT_CHECK_DELAY_MS = 500

# Pause after killing the gateway on an explicit restart
DEFAULT_RESTART_SETTLE_MS = 2_000


def _as_bool(val: object, default: bool) -> bool:
    if val is None:
        return default
    s = str(val).strip().lower()
    if s in ("1", "true", "yes", "on", "y"):  # truthy
        return True
    if s in ("0", "false", "no", "off", "n"):
        return False
    return default


def _parse_list(raw: str) -> List[str]:
    try:
        # Support JSON array
        if raw.strip().startswith("["):
            vals = json.loads(raw)
            return [str(v).strip() for v in vals if str(v).strip()]
    except Exception:
        pass
    # Fallback: comma-separated list
    return [s.strip() for s in raw.split(",") if s.strip()]


@lru_cache(maxsize=1)
def load_comprehensive_config() -> Optional[configparser.ConfigParser]:
    """Read ``Config_Files/config.txt`` if present.

    Returns None when the file is missing; environment variables alone are a
    complete configuration.
    """
    config_path_obj = _project_root() / 'Config_Files' / 'config.txt'
    if not config_path_obj.exists():
        _log_debug(f"No config file at {str(config_path_obj)}; using environment only")
        return None
    config_parser = configparser.ConfigParser()
    try:
        config_parser.read(config_path_obj, encoding="utf-8")
    except configparser.Error as e:
        _log_warning(f"Failed to parse {str(config_path_obj)}: {e}")
        return None
    _log_info(f"Loaded config file: {str(config_path_obj)}")
    return config_parser


def load_settings() -> dict:
    """
    Assemble gateway supervisor settings from environment variables and the optional config file.

    Environment variables win over the ``[Gateway]`` section of
    ``Config_Files/config.txt``; malformed numeric values fall back to defaults.

    Returns:
        dict: consolidated settings keyed by setting name (GATEWAY_*, LOG_LEVEL, ...).
    """
    # Ensure .env files are loaded before reading any environment variables
    _load_env_files_early()

    try:
        cp = load_comprehensive_config()
    except Exception:
        cp = None

    def _gw_get(key: str, fallback: Optional[str] = None) -> Optional[str]:
        try:
            if cp and cp.has_section('Gateway'):
                return cp.get('Gateway', key, fallback=fallback)
        except Exception:
            pass
        return fallback

    def _gw_env_or_cfg(env_key: str, cfg_key: str, default: str) -> str:
        return os.getenv(env_key) or _gw_get(cfg_key, default) or default

    def _gw_int(env_key: str, cfg_key: str, default: int) -> int:
        raw = os.getenv(env_key) or _gw_get(cfg_key, str(default)) or str(default)
        try:
            return int(str(raw).replace("_", ""))
        except Exception:
            _log_warning(f"Invalid integer for {env_key}: {raw!r}; using {default}")
            return default

    def _gw_list(env_key: str, cfg_key: str, default: List[str]) -> List[str]:
        raw_env = os.getenv(env_key)
        if raw_env is not None:
            return _parse_list(raw_env)
        raw_cfg = _gw_get(cfg_key, None)
        if raw_cfg is not None:
            return _parse_list(str(raw_cfg))
        return list(default)

    GATEWAY_PORT = _gw_int("GATEWAY_PORT", "port", DEFAULT_GATEWAY_PORT)
    GATEWAY_START_COMMAND = _gw_env_or_cfg("GATEWAY_START_COMMAND", "start_command", DEFAULT_GATEWAY_START_COMMAND)
    GATEWAY_STARTUP_TIMEOUT_MS = _gw_int(
        "GATEWAY_STARTUP_TIMEOUT_MS", "startup_timeout_ms", DEFAULT_GATEWAY_STARTUP_TIMEOUT_MS
    )
    GATEWAY_STATUS_PROBE_TIMEOUT_MS = _gw_int(
        "GATEWAY_STATUS_PROBE_TIMEOUT_MS", "status_probe_timeout_ms", DEFAULT_GATEWAY_STATUS_PROBE_TIMEOUT_MS
    )
    GATEWAY_PROCESS_MATCH = _gw_list("GATEWAY_PROCESS_MATCH", "process_match", DEFAULT_GATEWAY_PROCESS_MATCH)
    GATEWAY_PROCESS_EXCLUDE = _gw_list("GATEWAY_PROCESS_EXCLUDE", "process_exclude", DEFAULT_GATEWAY_PROCESS_EXCLUDE)
    GATEWAY_R2_BUCKET = _gw_env_or_cfg("GATEWAY_R2_BUCKET", "r2_bucket", DEFAULT_R2_BUCKET)
    GATEWAY_R2_MOUNT_PATH = _gw_env_or_cfg("GATEWAY_R2_MOUNT_PATH", "r2_mount_path", DEFAULT_R2_MOUNT_PATH)
    GATEWAY_MOUNT_CHECK_DELAY_MS = _gw_int(
        "GATEWAY_MOUNT_CHECK_DELAY_MS", "mount_check_delay_ms", DEFAULT_MOUNT_CHECK_DELAY_MS
    )
    GATEWAY_RESTART_SETTLE_MS = _gw_int("GATEWAY_RESTART_SETTLE_MS", "restart_settle_ms", DEFAULT_RESTART_SETTLE_MS)

    LOG_LEVEL = (os.getenv("LOG_LEVEL") or _gw_get("log_level", "INFO") or "INFO").upper()
    LOG_STREAM = (os.getenv("LOG_STREAM") or "stderr").lower()
    LOG_COLOR = _as_bool(os.getenv("LOG_COLOR"), True)

    return {
        "PROJECT_ROOT": str(_project_root()),
        "API_V1_PREFIX": API_V1_PREFIX,
        "GATEWAY_PORT": GATEWAY_PORT,
        "GATEWAY_START_COMMAND": GATEWAY_START_COMMAND,
        "GATEWAY_STARTUP_TIMEOUT_MS": GATEWAY_STARTUP_TIMEOUT_MS,
        "GATEWAY_STATUS_PROBE_TIMEOUT_MS": GATEWAY_STATUS_PROBE_TIMEOUT_MS,
        "GATEWAY_PROCESS_MATCH": GATEWAY_PROCESS_MATCH,
        "GATEWAY_PROCESS_EXCLUDE": GATEWAY_PROCESS_EXCLUDE,
        "GATEWAY_R2_BUCKET": GATEWAY_R2_BUCKET,
        "GATEWAY_R2_MOUNT_PATH": GATEWAY_R2_MOUNT_PATH,
        "GATEWAY_MOUNT_CHECK_DELAY_MS": GATEWAY_MOUNT_CHECK_DELAY_MS,
        "GATEWAY_RESTART_SETTLE_MS": GATEWAY_RESTART_SETTLE_MS,
        "LOG_LEVEL": LOG_LEVEL,
        "LOG_STREAM": LOG_STREAM,
        "LOG_COLOR": LOG_COLOR,
    }


# --- Lazy Configuration Proxies ---

class _LazyMapping(MutableMapping[str, Any]):
    """MutableMapping proxy that materializes its data on first access."""

    __slots__ = ("_loader", "_data")

    def __init__(self, loader):
        object.__setattr__(self, "_loader", loader)
        object.__setattr__(self, "_data", None)

    def _ensure(self):
        if object.__getattribute__(self, "_data") is None:
            loader = object.__getattribute__(self, "_loader")
            data = loader()
            if data is None:
                data = {}
            object.__setattr__(self, "_data", data)

    def __getitem__(self, key):
        self._ensure()
        return object.__getattribute__(self, "_data")[key]

    def __setitem__(self, key, value):
        self._ensure()
        object.__getattribute__(self, "_data")[key] = value

    def __delitem__(self, key):
        self._ensure()
        del object.__getattribute__(self, "_data")[key]

    def __iter__(self):
        self._ensure()
        return iter(object.__getattribute__(self, "_data"))

    def __len__(self):
        self._ensure()
        return len(object.__getattribute__(self, "_data"))

    def get(self, key, default=None):
        self._ensure()
        return object.__getattribute__(self, "_data").get(key, default)

    def __contains__(self, item):
        self._ensure()
        return item in object.__getattribute__(self, "_data")


class LazySettings(_LazyMapping):
    """Lazy settings mapping that also supports attribute-style access."""

    def __getattr__(self, name):
        if name in {"_loader", "_data"}:
            return object.__getattribute__(self, name)
        self._ensure()
        data = object.__getattribute__(self, "_data")
        try:
            return data[name]
        except KeyError as exc:
            raise AttributeError(name) from exc

    def __setattr__(self, name, value):
        if name in {"_loader", "_data"}:
            object.__setattr__(self, name, value)
            return
        self._ensure()
        object.__getattribute__(self, "_data")[name] = value


settings = LazySettings(load_settings)

_LOGGER_READY = True
_flush_startup_logs()


def clear_config_cache() -> None:
    """Clear cached configuration loaders (for tests or dynamic reloads)."""
    load_comprehensive_config.cache_clear()
    object.__setattr__(settings, "_data", None)

#
# End of config.py
#######################################################################################################################
