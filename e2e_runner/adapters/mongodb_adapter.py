"""
MongoDB Adapter

Document steps through pymongo. Calls are blocking, so each one runs in a
worker thread via asyncio.to_thread.

Actions (all need `collection`): insertOne, insertMany, findOne, find,
updateOne, updateMany, deleteOne, deleteMany, count, aggregate.

An `_id` given as a 24-hex string or as {$oid: "..."} in a filter is
converted to an ObjectId. ObjectIds in results come back as strings so
they can be captured and interpolated.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from ..errors import AdapterConnectionError
from ..models import AdapterType
from .base import BaseAdapter

logger = logging.getLogger(__name__)


def normalize_filter(filter_doc: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert _id strings and {$oid} notation to ObjectId."""
    from bson import ObjectId

    normalized = dict(filter_doc or {})
    doc_id = normalized.get("_id")
    if isinstance(doc_id, str) and ObjectId.is_valid(doc_id):
        normalized["_id"] = ObjectId(doc_id)
    elif isinstance(doc_id, dict) and isinstance(doc_id.get("$oid"), str):
        normalized["_id"] = ObjectId(doc_id["$oid"])
    return normalized


def to_plain(value: Any) -> Any:
    """Replace ObjectIds with their hex string, recursively."""
    from bson import ObjectId

    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


class MongoDBAdapter(BaseAdapter):
    """Document steps against MongoDB."""

    adapter_type = AdapterType.MONGODB

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._client = None
        self._db = None
        self._handlers = {
            "insertOne": self._handle_insert_one,
            "insertMany": self._handle_insert_many,
            "findOne": self._handle_find_one,
            "find": self._handle_find,
            "updateOne": self._handle_update_one,
            "updateMany": self._handle_update_many,
            "deleteOne": self._handle_delete_one,
            "deleteMany": self._handle_delete_many,
            "count": self._handle_count,
            "aggregate": self._handle_aggregate,
        }

    async def connect(self):
        if self.connected:
            return
        from pymongo import MongoClient

        try:
            self._client = MongoClient(self.config["connectionString"])
            database = self.config.get("database")
            self._db = (
                self._client[database] if database else self._client.get_default_database()
            )
            await asyncio.to_thread(self._db.command, "ping")
        except Exception as e:
            self._client = None
            self._db = None
            raise AdapterConnectionError(self.name, f"Failed to connect: {e}") from e

        self.connected = True
        logger.info("MongoDB connected")

    async def disconnect(self):
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
            self._db = None
            logger.info("MongoDB disconnected")
        self.connected = False

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            await asyncio.to_thread(self._db.command, "ping")
            return True
        except Exception as e:
            logger.debug(f"MongoDB health check failed: {e}")
            return False

    def _collection(self, params: Dict[str, Any], action: str):
        return self._db[self.require(params, "collection", action)]

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_insert_one(self, params, ctx):
        collection = self._collection(params, "insertOne")
        result = await asyncio.to_thread(collection.insert_one, dict(params.get("document") or {}))
        return {"insertedId": str(result.inserted_id)}

    async def _handle_insert_many(self, params, ctx):
        collection = self._collection(params, "insertMany")
        docs = [dict(d) for d in params.get("documents") or []]
        result = await asyncio.to_thread(collection.insert_many, docs)
        return {"insertedIds": [str(i) for i in result.inserted_ids]}

    async def _handle_find_one(self, params, ctx):
        collection = self._collection(params, "findOne")
        doc = await asyncio.to_thread(collection.find_one, normalize_filter(params.get("filter")))
        return to_plain(doc)

    async def _handle_find(self, params, ctx):
        collection = self._collection(params, "find")
        query = normalize_filter(params.get("filter"))
        docs = await asyncio.to_thread(lambda: list(collection.find(query)))
        return to_plain(docs)

    async def _handle_update_one(self, params, ctx):
        collection = self._collection(params, "updateOne")
        result = await asyncio.to_thread(
            collection.update_one, normalize_filter(params.get("filter")), params.get("update")
        )
        return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}

    async def _handle_update_many(self, params, ctx):
        collection = self._collection(params, "updateMany")
        result = await asyncio.to_thread(
            collection.update_many, normalize_filter(params.get("filter")), params.get("update")
        )
        return {"matchedCount": result.matched_count, "modifiedCount": result.modified_count}

    async def _handle_delete_one(self, params, ctx):
        collection = self._collection(params, "deleteOne")
        result = await asyncio.to_thread(collection.delete_one, normalize_filter(params.get("filter")))
        return {"deletedCount": result.deleted_count}

    async def _handle_delete_many(self, params, ctx):
        collection = self._collection(params, "deleteMany")
        result = await asyncio.to_thread(collection.delete_many, normalize_filter(params.get("filter")))
        return {"deletedCount": result.deleted_count}

    async def _handle_count(self, params, ctx):
        collection = self._collection(params, "count")
        return await asyncio.to_thread(
            collection.count_documents, normalize_filter(params.get("filter"))
        )

    async def _handle_aggregate(self, params, ctx):
        collection = self._collection(params, "aggregate")
        pipeline = list(params.get("pipeline") or [])
        docs = await asyncio.to_thread(lambda: list(collection.aggregate(pipeline)))
        return to_plain(docs)
