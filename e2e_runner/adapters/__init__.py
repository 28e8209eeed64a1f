"""
Backend adapters.

Each adapter wraps one backend kind behind connect/disconnect/execute/
health_check. Backend client libraries are imported on connect(), so
only the adapters a run actually uses need their extras installed.
"""

from .base import BaseAdapter
from .eventhub_adapter import EventHubAdapter
from .http_adapter import HTTPAdapter, build_url, check_response
from .mongodb_adapter import MongoDBAdapter
from .postgresql_adapter import PostgreSQLAdapter
from .redis_adapter import RedisAdapter
from .registry import (
    ADAPTER_CLASSES,
    AdapterRegistry,
    get_required_adapters,
    parse_adapter_type,
)

__all__ = [
    "BaseAdapter",
    "HTTPAdapter",
    "PostgreSQLAdapter",
    "RedisAdapter",
    "MongoDBAdapter",
    "EventHubAdapter",
    "AdapterRegistry",
    "ADAPTER_CLASSES",
    "get_required_adapters",
    "parse_adapter_type",
    "build_url",
    "check_response",
]
