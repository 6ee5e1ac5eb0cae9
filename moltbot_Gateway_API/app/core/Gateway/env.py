from __future__ import annotations

from typing import Dict, Optional

from .models import GatewayEnv

# Worker binding -> container variable, copied only when set
_PASSTHROUGH = {
    "MOLTBOT_GATEWAY_TOKEN": "CLAWDBOT_GATEWAY_TOKEN",
    "DEV_MODE": "CLAWDBOT_DEV_MODE",
    "CLAWDBOT_BIND_MODE": "CLAWDBOT_BIND_MODE",
    "TELEGRAM_BOT_TOKEN": "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_DM_POLICY": "TELEGRAM_DM_POLICY",
    "DISCORD_BOT_TOKEN": "DISCORD_BOT_TOKEN",
    "DISCORD_DM_POLICY": "DISCORD_DM_POLICY",
    "SLACK_BOT_TOKEN": "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN": "SLACK_APP_TOKEN",
    "CDP_SECRET": "CDP_SECRET",
    "WORKER_URL": "WORKER_URL",
}


def _get(env: GatewayEnv, key: str) -> Optional[str]:
    val = env.get(key)
    if val is None:
        return None
    s = str(val)
    return s if s.strip() else None


def build_env_vars(env: GatewayEnv) -> Dict[str, str]:
    """Build the environment passed to the gateway start script.

    AI Gateway credentials take precedence over direct provider keys; the
    ``/openai`` suffix of AI_GATEWAY_BASE_URL selects the OpenAI variables.
    """
    env_vars: Dict[str, str] = {}

    base_url = _get(env, "AI_GATEWAY_BASE_URL")
    is_openai_gateway = bool(base_url and base_url.rstrip("/").endswith("/openai"))

    gw_key = _get(env, "AI_GATEWAY_API_KEY")
    if gw_key:
        if is_openai_gateway:
            env_vars["OPENAI_API_KEY"] = gw_key
        else:
            env_vars["ANTHROPIC_API_KEY"] = gw_key

    for key in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY"):
        direct = _get(env, key)
        if direct and key not in env_vars:
            env_vars[key] = direct

    if base_url:
        env_vars["AI_GATEWAY_BASE_URL"] = base_url
        if is_openai_gateway:
            env_vars["OPENAI_BASE_URL"] = base_url
        else:
            env_vars["ANTHROPIC_BASE_URL"] = base_url
    else:
        anthropic_base = _get(env, "ANTHROPIC_BASE_URL")
        if anthropic_base:
            env_vars["ANTHROPIC_BASE_URL"] = anthropic_base

    for src, dst in _PASSTHROUGH.items():
        val = _get(env, src)
        if val:
            env_vars[dst] = val

    return env_vars
