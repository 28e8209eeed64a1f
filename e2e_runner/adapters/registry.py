"""
Adapter Registry

Owns the adapter instances for one run. HTTP is built whenever it is
required (it costs nothing until a request is made); every other adapter
is built only when it is both configured for the environment and
required by the selected tests. With no requirement filter, everything
configured is built.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set, Type, Union

from ..errors import AdapterConnectionError
from ..models import AdapterType, UnifiedTestDefinition
from .base import BaseAdapter
from .eventhub_adapter import EventHubAdapter
from .http_adapter import HTTPAdapter
from .mongodb_adapter import MongoDBAdapter
from .postgresql_adapter import PostgreSQLAdapter
from .redis_adapter import RedisAdapter

logger = logging.getLogger(__name__)

ADAPTER_CLASSES: Dict[AdapterType, Type[BaseAdapter]] = {
    AdapterType.HTTP: HTTPAdapter,
    AdapterType.POSTGRESQL: PostgreSQLAdapter,
    AdapterType.REDIS: RedisAdapter,
    AdapterType.MONGODB: MongoDBAdapter,
    AdapterType.EVENTHUB: EventHubAdapter,
}


def parse_adapter_type(value: Union[str, AdapterType]) -> AdapterType:
    """Parse an adapter name, raising ValueError listing the valid ones."""
    try:
        return AdapterType(value)
    except ValueError:
        valid = ", ".join(t.value for t in AdapterType)
        raise ValueError(f"Invalid adapter type: {value}. Valid types: {valid}") from None


def get_required_adapters(tests: Iterable[UnifiedTestDefinition]) -> Set[AdapterType]:
    """Adapter kinds referenced by declarative steps of any phase."""
    required: Set[AdapterType] = set()
    for test in tests:
        required |= test.required_adapters()
    return required


def build_adapter_config(adapter_type: AdapterType, environment: Any) -> Dict[str, Any]:
    """Adapter constructor config from an environment's settings."""
    settings = dict((getattr(environment, "adapters", None) or {}).get(adapter_type.value) or {})

    if adapter_type == AdapterType.HTTP:
        return {**settings, "baseUrl": getattr(environment, "base_url", "") or settings.get("baseUrl", "")}
    if adapter_type == AdapterType.POSTGRESQL:
        return {
            "connectionString": settings.get("connectionString"),
            "poolMin": 2,
            "poolMax": settings.get("poolSize") or 5,
        }
    if adapter_type == AdapterType.REDIS:
        return {
            "connectionString": settings.get("connectionString"),
            "keyPrefix": settings.get("keyPrefix"),
        }
    if adapter_type == AdapterType.MONGODB:
        return {
            "connectionString": settings.get("connectionString"),
            "database": settings.get("database"),
        }
    return {
        "connectionString": settings.get("connectionString"),
        "consumerGroup": settings.get("consumerGroup"),
        "eventHubName": settings.get("eventHubName"),
    }


class AdapterRegistry:
    """Builds, connects and hands out adapters for a run."""

    def __init__(self, environment: Any = None, required_adapters: Optional[Set[AdapterType]] = None):
        self.environment = environment
        self.required_adapters = (
            {parse_adapter_type(t) for t in required_adapters} if required_adapters is not None else None
        )
        self._adapters: Dict[AdapterType, BaseAdapter] = {}
        if environment is not None:
            self._initialize_adapters()

    def _is_required(self, adapter_type: AdapterType) -> bool:
        if self.required_adapters is None:
            return True
        return adapter_type in self.required_adapters

    def _initialize_adapters(self):
        configured = getattr(self.environment, "adapters", None) or {}
        for adapter_type, adapter_class in ADAPTER_CLASSES.items():
            if not self._is_required(adapter_type):
                continue
            if adapter_type != AdapterType.HTTP and not configured.get(adapter_type.value):
                continue
            config = build_adapter_config(adapter_type, self.environment)
            self._adapters[adapter_type] = adapter_class(config)
            logger.debug(f"Initialized {adapter_type.value} adapter")

    def register(self, adapter_type: Union[str, AdapterType], adapter: BaseAdapter):
        """Install an adapter instance directly (custom or test adapters)."""
        self._adapters[parse_adapter_type(adapter_type)] = adapter

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect_all(self):
        """
        Connect every adapter concurrently. Any failure names its adapter.

        If one adapter fails, the ones that did connect are disconnected
        again before the first failure is raised.
        """

        async def connect(adapter_type: AdapterType, adapter: BaseAdapter):
            try:
                await adapter.connect()
            except AdapterConnectionError:
                raise
            except Exception as e:
                raise AdapterConnectionError(adapter_type.value, str(e)) from e

        results = await asyncio.gather(
            *(connect(t, a) for t, a in self._adapters.items()), return_exceptions=True
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(f"{len(failures)} adapter(s) failed to connect, disconnecting the rest")
            await self.disconnect_all()
            raise failures[0]
        logger.info(f"Connected {len(self._adapters)} adapter(s)")

    async def disconnect_all(self):
        """Disconnect everything. Failures are logged, never raised."""

        async def disconnect(adapter_type: AdapterType, adapter: BaseAdapter):
            try:
                await adapter.disconnect()
            except Exception as e:
                logger.warning(f"Failed to disconnect {adapter_type.value} adapter: {e}")

        await asyncio.gather(*(disconnect(t, a) for t, a in self._adapters.items()))
        logger.info("All adapters disconnected")

    # =========================================================================
    # Lookup
    # =========================================================================

    def get(self, adapter_type: Union[str, AdapterType]) -> BaseAdapter:
        key = parse_adapter_type(adapter_type)
        adapter = self._adapters.get(key)
        if adapter is None:
            raise LookupError(f"Adapter not configured: {key.value}")
        return adapter

    def has(self, adapter_type: Union[str, AdapterType]) -> bool:
        try:
            return parse_adapter_type(adapter_type) in self._adapters
        except ValueError:
            return False

    def get_available_adapters(self) -> List[AdapterType]:
        return list(self._adapters)

    async def health_check_all(self) -> Dict[AdapterType, bool]:
        results = {}
        for adapter_type, adapter in self._adapters.items():
            try:
                results[adapter_type] = await adapter.health_check()
            except Exception as e:
                logger.debug(f"{adapter_type.value} health check raised: {e}")
                results[adapter_type] = False
        return results

    async def health_check(self, adapter_type: Union[str, AdapterType]) -> bool:
        adapter = self._adapters.get(parse_adapter_type(adapter_type))
        if adapter is None:
            return False
        return await adapter.health_check()
