# main.py
# Description: FastAPI entry point for the moltbot gateway supervisor.
#
# Imports
import logging
import re
import sys
from contextlib import asynccontextmanager
from typing import Any, Optional

#
# 3rd-party Libraries
from fastapi import FastAPI
from loguru import logger

#
# Local Imports
from moltbot_Gateway_API.app.core.config import API_V1_PREFIX, settings
from moltbot_Gateway_API.app.core.Gateway.coordinator import get_gateway_coordinator
from moltbot_Gateway_API.app.core.Gateway.models import GatewayEnv, Sandbox
from moltbot_Gateway_API.app.api.v1.endpoints.gateway import router as gateway_router
#
########################################################################################################################


class InterceptHandler(logging.Handler):
    """Route stdlib logging (uvicorn, asyncio) into Loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        # Walk back through frames to skip logging internals
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


_SECRET_PATTERNS = (
    (re.compile(r"sk-[A-Za-z0-9-_]{8,}"), "sk-***REDACTED***"),
    (re.compile(r"(?i)(api[_-]?key|authorization|token|secret)\s*[:=]\s*[^\s,;]+"), r"\1=***REDACTED***"),
)


def _redact_patcher(record: dict) -> None:
    # Env var maps reach the logs by name only, but keep tokens out if a value leaks into a message
    msg = record.get("message", "")
    for pattern, repl in _SECRET_PATTERNS:
        msg = pattern.sub(repl, msg)
    record["message"] = msg


def _ensure_log_extra_fields(record: dict) -> bool:
    extra = record.setdefault("extra", {})
    extra.setdefault("gateway_attempt", "")
    extra.setdefault("gw_component", "")
    extra.setdefault("request_id", "")
    return True


_LOG_FORMAT = (
    "<dim>{time:YYYY-MM-DD HH:mm:ss.SSS}</dim> | "
    "<level>{level: <8}</level> | "
    "<yellow>attempt={extra[gateway_attempt]}</yellow> <yellow>gw={extra[gw_component]}</yellow> "
    "<cyan>req={extra[request_id]}</cyan> | "
    "<blue>{name}</blue>:<magenta>{function}</magenta>:<cyan>{line}</cyan> - {message}"
)


def configure_logging() -> None:
    """Reset Loguru to a single sink and intercept stdlib loggers."""
    logger.remove()
    sink = sys.stdout if settings.get("LOG_STREAM", "stderr") in {"1", "true", "yes", "on", "stdout"} else sys.stderr
    use_color = bool(settings.get("LOG_COLOR", True)) and sink.isatty()
    logger.add(
        sink,
        level=settings.get("LOG_LEVEL", "INFO"),
        format=_LOG_FORMAT,
        colorize=use_color,
        filter=_ensure_log_extra_fields,
        enqueue=False,
    )
    logger.configure(patcher=_redact_patcher)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for _name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        _lg = logging.getLogger(_name)
        _lg.handlers = [InterceptHandler()]
        _lg.propagate = False


configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Gateway supervisor starting (port={settings.get('GATEWAY_PORT')}, "
        f"command={settings.get('GATEWAY_START_COMMAND')})"
    )
    yield
    # Let pending background restarts settle so their outcome is logged
    try:
        await get_gateway_coordinator().wait_background()
    except Exception as e:
        logger.debug(f"wait_background on shutdown failed: {e}")
    logger.info("Gateway supervisor stopped")


app = FastAPI(
    title="moltbot gateway supervisor",
    version="0.1.0",
    description="Keeps a single moltbot gateway process alive and reachable inside the sandbox.",
    lifespan=lifespan,
)
app.state.sandbox = None
app.state.gateway_env = None

app.include_router(gateway_router, prefix=API_V1_PREFIX)


def attach_sandbox(sandbox: Optional[Sandbox], env: Optional[GatewayEnv] = None, target: Any = None) -> None:
    """Attach the sandbox handle (and optionally the worker env) used by the endpoints."""
    target = target or app
    target.state.sandbox = sandbox
    target.state.gateway_env = env


def run_server():
    """Run the FastAPI server using uvicorn."""
    import uvicorn
    uvicorn.run(
        "moltbot_Gateway_API.app.main:app",
        host="127.0.0.1",
        port=8000,
        log_level="info"
    )

if __name__ == "__main__":
    run_server()

#
## End of main.py
########################################################################################################################
