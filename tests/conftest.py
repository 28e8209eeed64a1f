"""
Pytest fixtures for E2E runner tests
"""
import asyncio
import os
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from e2e_runner.adapters.base import BaseAdapter  # noqa: E402
from e2e_runner.adapters.registry import AdapterRegistry  # noqa: E402
from e2e_runner.models import AdapterType  # noqa: E402


class FakeAdapter(BaseAdapter):
    """
    In-memory adapter with scripted actions:

    - echo: returns params
    - fail: raises RuntimeError(params["message"])
    - flaky: fails params["failures"] times, then returns {"ok": True}
    - slow: sleeps params["ms"] then returns {"slept": ms}
    """

    def __init__(self, adapter_type: AdapterType = AdapterType.HTTP, config=None):
        super().__init__(config)
        self.adapter_type = adapter_type
        self.calls = []
        self.attempts = 0
        self.healthy = True
        self._handlers = {
            "echo": self._echo,
            "fail": self._fail,
            "flaky": self._flaky,
            "slow": self._slow,
        }

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    async def health_check(self) -> bool:
        return self.healthy

    async def _echo(self, params, ctx):
        self.calls.append(("echo", params))
        return dict(params)

    async def _fail(self, params, ctx):
        self.calls.append(("fail", params))
        raise RuntimeError(params.get("message", "boom"))

    async def _flaky(self, params, ctx):
        self.calls.append(("flaky", params))
        self.attempts += 1
        if self.attempts <= params.get("failures", 1):
            raise RuntimeError(f"flaky failure {self.attempts}")
        return {"ok": True, "attempts": self.attempts}

    async def _slow(self, params, ctx):
        self.calls.append(("slow", params))
        await asyncio.sleep(params.get("ms", 100) / 1000)
        return {"slept": params.get("ms", 100)}


@pytest.fixture
def fake_adapter():
    """Connected fake HTTP adapter."""
    adapter = FakeAdapter()
    adapter.connected = True
    return adapter


@pytest.fixture
def registry(fake_adapter):
    """Registry holding the fake adapter as http."""
    reg = AdapterRegistry()
    reg.register(AdapterType.HTTP, fake_adapter)
    return reg


@pytest.fixture
def config_file(tmp_path):
    """Minimal config file with one local environment."""
    path = tmp_path / "e2e.config.yaml"
    path.write_text(
        """
version: "1.0"
environments:
  local:
    baseUrl: "http://localhost:3000"
    adapters:
      redis:
        connectionString: "${E2E_TEST_REDIS_URL}"
  staging:
    baseUrl: "https://staging.example.com"
defaults:
  timeout: 5000
  retries: 1
  retryDelay: 10
  parallel: 2
variables:
  testPrefix: "e2e_"
reporters:
  - type: console
""",
        encoding="utf-8",
    )
    return path
