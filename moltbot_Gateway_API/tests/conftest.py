"""
Pytest configuration for the gateway supervisor test suite.

Keeps process-wide state (settings cache, metrics registry, default
coordinator) isolated between tests.
"""

import os

import pytest

# Verbose logs before the app configures its sink
os.environ.setdefault("LOG_LEVEL", "DEBUG")


@pytest.fixture(autouse=True)
def _isolate_gateway_state():
    from moltbot_Gateway_API.app.core.config import clear_config_cache
    from moltbot_Gateway_API.app.core.Gateway.coordinator import reset_gateway_coordinator
    from moltbot_Gateway_API.app.core.Metrics import get_metrics_registry

    clear_config_cache()
    get_metrics_registry().reset()
    reset_gateway_coordinator()
    yield
    clear_config_cache()
    reset_gateway_coordinator()
