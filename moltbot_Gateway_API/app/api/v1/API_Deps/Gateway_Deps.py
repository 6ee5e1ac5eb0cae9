from __future__ import annotations

import os

from fastapi import HTTPException, Request, status

from moltbot_Gateway_API.app.core.Gateway.coordinator import (
    GatewayStartupCoordinator,
    get_gateway_coordinator,
)
from moltbot_Gateway_API.app.core.Gateway.models import GatewayEnv, Sandbox


def get_gateway_sandbox(request: Request) -> Sandbox:
    """Sandbox handle attached to the app by whoever embeds the supervisor."""
    sandbox = getattr(request.app.state, "sandbox", None)
    if sandbox is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="sandbox_not_attached")
    return sandbox


def get_gateway_env(request: Request) -> GatewayEnv:
    env = getattr(request.app.state, "gateway_env", None)
    if env is None:
        return dict(os.environ)
    return env


def get_coordinator() -> GatewayStartupCoordinator:
    return get_gateway_coordinator()
