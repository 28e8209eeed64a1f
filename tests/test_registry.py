"""
Adapter Registry Tests

Tests for building, connecting and looking up adapters.
"""
import asyncio

import pytest

from e2e_runner.adapters.http_adapter import HTTPAdapter
from e2e_runner.adapters.redis_adapter import RedisAdapter
from e2e_runner.adapters.registry import (
    AdapterRegistry,
    build_adapter_config,
    get_required_adapters,
    parse_adapter_type,
)
from e2e_runner.config import EnvironmentConfig
from e2e_runner.errors import AdapterConnectionError
from e2e_runner.models import AdapterType, UnifiedStep, UnifiedTestDefinition

from .conftest import FakeAdapter

ENV = EnvironmentConfig(
    name="local",
    base_url="http://api.local",
    adapters={
        "redis": {"connectionString": "redis://localhost", "keyPrefix": "e2e:"},
        "postgresql": {"connectionString": "postgresql://localhost/db", "poolSize": 3},
    },
)


class BrokenAdapter(FakeAdapter):
    async def connect(self):
        raise OSError("connection refused")


class SlowAdapter(FakeAdapter):
    connect_finished = False

    async def connect(self):
        await asyncio.sleep(0.05)
        self.connected = True
        self.connect_finished = True


class TestBuild:
    """Test adapter selection."""

    def test_required_only(self):
        """Only required adapters are built; http always is when required."""
        registry = AdapterRegistry(ENV, {AdapterType.HTTP, AdapterType.REDIS, AdapterType.MONGODB})

        assert set(registry.get_available_adapters()) == {AdapterType.HTTP, AdapterType.REDIS}
        assert isinstance(registry.get("http"), HTTPAdapter)
        assert isinstance(registry.get(AdapterType.REDIS), RedisAdapter)
        assert registry.get("redis").key_prefix == "e2e:"

    def test_no_filter_builds_all_configured(self):
        """Without a requirement set, every configured adapter is built."""
        registry = AdapterRegistry(ENV)
        assert set(registry.get_available_adapters()) == {
            AdapterType.HTTP,
            AdapterType.REDIS,
            AdapterType.POSTGRESQL,
        }

    def test_adapter_config(self):
        """Environment settings map onto adapter config."""
        assert build_adapter_config(AdapterType.HTTP, ENV)["baseUrl"] == "http://api.local"
        assert build_adapter_config(AdapterType.POSTGRESQL, ENV)["poolMax"] == 3

    def test_lookup_errors(self):
        """Unconfigured and unknown adapters are reported."""
        registry = AdapterRegistry(ENV, {AdapterType.HTTP})
        with pytest.raises(LookupError, match="Adapter not configured: redis"):
            registry.get("redis")
        with pytest.raises(ValueError, match="Invalid adapter type: ftp"):
            registry.get("ftp")
        assert not registry.has("ftp")
        assert registry.has("http")

    def test_required_adapters(self):
        """Required adapters are collected from all tests."""
        tests = [
            UnifiedTestDefinition(name="a", execute=[UnifiedStep(id="e", adapter=AdapterType.HTTP, action="request")]),
            UnifiedTestDefinition(name="b", teardown=[UnifiedStep(id="t", adapter=AdapterType.REDIS, action="del")]),
        ]
        assert get_required_adapters(tests) == {AdapterType.HTTP, AdapterType.REDIS}

    def test_parse_adapter_type(self):
        """Names parse to enum members."""
        assert parse_adapter_type("mongodb") == AdapterType.MONGODB


class TestLifecycle:
    """Test connect, disconnect and health checks."""

    def test_connect_and_disconnect(self):
        """Every registered adapter is connected and disconnected."""
        registry = AdapterRegistry()
        http, redis = FakeAdapter(), FakeAdapter(AdapterType.REDIS)
        registry.register("http", http)
        registry.register(AdapterType.REDIS, redis)

        asyncio.run(registry.connect_all())
        assert http.connected and redis.connected
        asyncio.run(registry.disconnect_all())
        assert not http.connected and not redis.connected

    def test_connect_failure_names_adapter(self):
        """Connection failures say which adapter failed."""
        registry = AdapterRegistry()
        registry.register("redis", BrokenAdapter(AdapterType.REDIS))
        with pytest.raises(AdapterConnectionError) as exc:
            asyncio.run(registry.connect_all())
        assert exc.value.adapter == "redis"
        assert "connection refused" in str(exc.value)

    def test_failed_connect_disconnects_the_rest(self):
        """Adapters that connected are closed again when another one fails."""
        registry = AdapterRegistry()
        good = SlowAdapter()
        registry.register("http", good)
        registry.register("redis", BrokenAdapter(AdapterType.REDIS))

        with pytest.raises(AdapterConnectionError, match=r"\[redis\] connection refused"):
            asyncio.run(registry.connect_all())
        assert good.connect_finished
        assert not good.connected

    def test_health_checks(self):
        """Health results are per adapter."""
        registry = AdapterRegistry()
        healthy, sick = FakeAdapter(), FakeAdapter(AdapterType.REDIS)
        sick.healthy = False
        registry.register("http", healthy)
        registry.register("redis", sick)

        assert asyncio.run(registry.health_check_all()) == {AdapterType.HTTP: True, AdapterType.REDIS: False}
        assert asyncio.run(registry.health_check("http"))
        assert not asyncio.run(registry.health_check("mongodb"))
