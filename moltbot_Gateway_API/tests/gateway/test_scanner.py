import pytest

from moltbot_Gateway_API.app.core.Gateway.classifier import CommandRules
from moltbot_Gateway_API.app.core.Gateway.scanner import find_gateway_process
from moltbot_Gateway_API.app.core.Metrics import get_metrics_registry


@pytest.mark.unit
@pytest.mark.asyncio
async def test_returns_first_matching_process_in_listing_order(make_sandbox, make_process, policy):
    cli = make_process("cli", "clawdbot devices list", "running")
    dead = make_process("old", "/usr/local/bin/start-moltbot.sh", "completed")
    first = make_process("gw-1", "/usr/local/bin/start-moltbot.sh", "starting")
    second = make_process("gw-2", "clawdbot gateway", "running")
    sandbox = make_sandbox([cli, dead, first, second])

    found = await find_gateway_process(sandbox, policy.rules)

    assert found is first


@pytest.mark.unit
@pytest.mark.asyncio
async def test_none_when_nothing_qualifies(make_sandbox, make_process, policy):
    sandbox = make_sandbox([
        make_process("cli", "clawdbot --version", "running"),
        make_process("gw", "clawdbot gateway", "failed"),
    ])
    assert await find_gateway_process(sandbox, policy.rules) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_listing_failure_reads_as_no_process(make_sandbox, policy):
    sandbox = make_sandbox(list_error=RuntimeError("sandbox unavailable"))

    assert await find_gateway_process(sandbox, policy.rules) is None

    stats = get_metrics_registry().get_metric_stats(
        "gateway_soft_failures_total", labels={"operation": "list_processes"}
    )
    assert stats["count"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_custom_rules(make_sandbox, make_process):
    sandbox = make_sandbox([make_process("x", "moltbot serve", "running")])
    rules = CommandRules.from_lists(["moltbot serve"])
    found = await find_gateway_process(sandbox, rules)
    assert found is not None and found.id == "x"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rules_default_to_configured_policy(make_sandbox, make_process, monkeypatch):
    from moltbot_Gateway_API.app.core.config import clear_config_cache

    monkeypatch.setenv("GATEWAY_PROCESS_MATCH", "my-gateway")
    monkeypatch.setenv("GATEWAY_PROCESS_EXCLUDE", "")
    clear_config_cache()
    sandbox = make_sandbox([
        make_process("a", "clawdbot gateway", "running"),
        make_process("b", "my-gateway --foreground", "running"),
    ])
    found = await find_gateway_process(sandbox)
    assert found is not None and found.id == "b"
