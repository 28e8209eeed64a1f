"""
Redis Adapter

Key-value steps through redis-py's asyncio client.

Actions needing `key`: get, set (value, optional ttl seconds), del,
exists, incr, hget (field), hset (field, value), hgetall.
Actions needing `pattern`: keys, flushPattern.

Capture and assertions apply to the command's result:

    - adapter: redis
      action: get
      key: "session:{{userId}}"
      capture: session
      assert:
        isNotNull: true
"""

import logging
from typing import Any, Dict, Optional

from ..assertions.matchers import stringify
from ..errors import AdapterConnectionError
from ..models import AdapterType
from .base import BaseAdapter

logger = logging.getLogger(__name__)


class RedisAdapter(BaseAdapter):
    """Key-value steps against Redis."""

    adapter_type = AdapterType.REDIS

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.key_prefix = self.config.get("keyPrefix") or ""
        self._client = None
        self._handlers = {
            "get": self._handle_get,
            "set": self._handle_set,
            "del": self._handle_del,
            "exists": self._handle_exists,
            "incr": self._handle_incr,
            "hget": self._handle_hget,
            "hset": self._handle_hset,
            "hgetall": self._handle_hgetall,
            "keys": self._handle_keys,
            "flushPattern": self._handle_flush_pattern,
        }

    async def connect(self):
        if self.connected:
            return
        import redis.asyncio as aioredis

        try:
            self._client = aioredis.from_url(
                self.config["connectionString"],
                decode_responses=True,
                socket_connect_timeout=10,
            )
            await self._client.ping()
        except Exception as e:
            self._client = None
            raise AdapterConnectionError(self.name, f"Failed to connect: {e}") from e

        self.connected = True
        logger.info("Redis connected")

    async def disconnect(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Redis disconnected")
        self.connected = False

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except Exception as e:
            logger.debug(f"Redis health check failed: {e}")
            return False

    def _key(self, params: Dict[str, Any], action: str) -> str:
        return f"{self.key_prefix}{self.require(params, 'key', action)}"

    def _pattern(self, params: Dict[str, Any], action: str) -> str:
        return f"{self.key_prefix}{self.require(params, 'pattern', action)}"

    @staticmethod
    def _wrap(action: str, params: Dict[str, Any], result: Any) -> Dict[str, Any]:
        return {
            "command": action.upper(),
            "key": params.get("key") or params.get("pattern"),
            "field": params.get("field"),
            "value": params.get("value"),
            "result": result,
        }

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_get(self, params, ctx):
        return self._wrap("get", params, await self._client.get(self._key(params, "get")))

    async def _handle_set(self, params, ctx):
        key = self._key(params, "set")
        value = stringify(params.get("value"))
        ttl = params.get("ttl")
        if ttl:
            await self._client.set(key, value, ex=int(ttl))
        else:
            await self._client.set(key, value)
        return self._wrap("set", params, "OK")

    async def _handle_del(self, params, ctx):
        return self._wrap("del", params, await self._client.delete(self._key(params, "del")))

    async def _handle_exists(self, params, ctx):
        return self._wrap("exists", params, await self._client.exists(self._key(params, "exists")))

    async def _handle_incr(self, params, ctx):
        return self._wrap("incr", params, await self._client.incr(self._key(params, "incr")))

    async def _handle_hget(self, params, ctx):
        key = self._key(params, "hget")
        return self._wrap("hget", params, await self._client.hget(key, params.get("field")))

    async def _handle_hset(self, params, ctx):
        key = self._key(params, "hset")
        result = await self._client.hset(key, params.get("field"), stringify(params.get("value")))
        return self._wrap("hset", params, result)

    async def _handle_hgetall(self, params, ctx):
        return self._wrap("hgetall", params, await self._client.hgetall(self._key(params, "hgetall")))

    async def _handle_keys(self, params, ctx):
        return self._wrap("keys", params, await self._client.keys(self._pattern(params, "keys")))

    async def _handle_flush_pattern(self, params, ctx):
        keys = await self._client.keys(self._pattern(params, "flushPattern"))
        deleted = await self._client.delete(*keys) if keys else 0
        return self._wrap("flushPattern", params, deleted)

    def capture_source(self, data: Any) -> Any:
        return (data or {}).get("result")
