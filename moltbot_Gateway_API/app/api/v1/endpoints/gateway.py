from __future__ import annotations

from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import PlainTextResponse
from loguru import logger
from pydantic import BaseModel

from moltbot_Gateway_API.app.api.v1.API_Deps.Gateway_Deps import (
    get_coordinator,
    get_gateway_env,
    get_gateway_sandbox,
)
from moltbot_Gateway_API.app.core.Gateway.coordinator import GatewayStartupCoordinator
from moltbot_Gateway_API.app.core.Gateway.models import GatewayEnv, GatewayError, Sandbox
from moltbot_Gateway_API.app.core.Logging.log_context import ensure_request_id, log_context
from moltbot_Gateway_API.app.core.Metrics import get_metrics_registry


router = APIRouter(prefix="/gateway", tags=["gateway"])

REQUEST_ID_HEADER = "X-Request-ID"


class GatewayStatusResponse(BaseModel):
    ok: bool
    status: str
    process_id: Optional[str] = None


class GatewayEnsureResponse(BaseModel):
    ok: bool
    process_id: str
    status: str


class GatewayRestartResponse(BaseModel):
    success: bool
    message: str
    previous_process_id: Optional[str] = None


def _request_id(request: Request, response: Response) -> str:
    rid = ensure_request_id(request)
    response.headers[REQUEST_ID_HEADER] = rid
    return rid


@router.get("/status", response_model=GatewayStatusResponse)
async def gateway_status(
    request: Request,
    response: Response,
    sandbox: Sandbox = Depends(get_gateway_sandbox),
    coordinator: GatewayStartupCoordinator = Depends(get_coordinator),
) -> GatewayStatusResponse:
    """Report whether the gateway process exists and answers on its port. Never starts it."""
    with log_context(request_id=_request_id(request, response), gw_component="api"):
        probe = await coordinator.probe_gateway(sandbox)
    return GatewayStatusResponse(ok=probe.ok, status=probe.status, process_id=probe.process_id)


@router.post("/ensure", response_model=GatewayEnsureResponse)
async def gateway_ensure(
    request: Request,
    response: Response,
    sandbox: Sandbox = Depends(get_gateway_sandbox),
    env: GatewayEnv = Depends(get_gateway_env),
    coordinator: GatewayStartupCoordinator = Depends(get_coordinator),
) -> GatewayEnsureResponse:
    """Start the gateway if needed and wait until it is reachable."""
    rid = _request_id(request, response)
    with log_context(request_id=rid, gw_component="api"):
        try:
            process = await coordinator.ensure_gateway(sandbox, env)
        except GatewayError as e:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=str(e),
                headers={REQUEST_ID_HEADER: rid},
            )
        except Exception as e:
            logger.error(f"Gateway start failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Failed to start gateway: {e}",
                headers={REQUEST_ID_HEADER: rid},
            )
    proc_status = getattr(process, "status", None)
    if isinstance(proc_status, Enum):
        proc_status = proc_status.value
    return GatewayEnsureResponse(ok=True, process_id=str(process.id), status=str(proc_status))


@router.post("/restart", response_model=GatewayRestartResponse)
async def gateway_restart(
    request: Request,
    response: Response,
    sandbox: Sandbox = Depends(get_gateway_sandbox),
    env: GatewayEnv = Depends(get_gateway_env),
    coordinator: GatewayStartupCoordinator = Depends(get_coordinator),
) -> GatewayRestartResponse:
    """Kill the current gateway and start a new one in the background."""
    with log_context(request_id=_request_id(request, response), gw_component="api"):
        logger.info("Gateway restart requested")
        result = await coordinator.restart_gateway(sandbox, env)
    return GatewayRestartResponse(
        success=result.success,
        message=result.message,
        previous_process_id=result.previous_process_id,
    )


@router.get("/metrics", response_class=PlainTextResponse)
def gateway_metrics() -> str:
    return get_metrics_registry().export_prometheus_format()
