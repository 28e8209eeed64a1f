"""
EventHub Adapter

Publish and consume Azure Event Hubs events via azure-eventhub's asyncio
clients.

Actions:
    publish  - message or messages (list), optional partitionKey
    waitFor  - first event whose body matches `filter` (dot path -> value)
               within `timeout` ms (default 30000)
    consume  - up to `count` events (default 1) within `timeout` ms
               (default 10000); returns what arrived if the timeout hits
    clear    - forget events received so far

Receiving starts from the moment the adapter connected, so events
published earlier in the same run are seen by later waitFor steps.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..assertions.jsonpath import UNDEFINED, get_by_path
from ..errors import AdapterConnectionError, AdapterError, OperationTimeoutError
from ..models import AdapterType
from .base import BaseAdapter

logger = logging.getLogger(__name__)

DEFAULT_CONSUMER_GROUP = "$Default"
DEFAULT_WAIT_TIMEOUT = 30000
DEFAULT_CONSUME_TIMEOUT = 10000


def matches_filter(body: Any, filter_spec: Optional[Dict[str, Any]]) -> bool:
    """Every dot path in the filter must equal its expected value."""
    if not filter_spec:
        return True
    for path, expected in filter_spec.items():
        if get_by_path(body, path, UNDEFINED) != expected:
            return False
    return True


def event_body(event: Any) -> Any:
    try:
        return event.body_as_json()
    except TypeError:
        return event.body_as_str()


class EventHubAdapter(BaseAdapter):
    """Event steps against Azure Event Hubs."""

    adapter_type = AdapterType.EVENTHUB

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.consumer_group = self.config.get("consumerGroup") or DEFAULT_CONSUMER_GROUP
        self.received_events: List[Any] = []
        self._producer = None
        self._starting_position = None
        self._handlers = {
            "publish": self._handle_publish,
            "waitFor": self._handle_wait_for,
            "consume": self._handle_consume,
            "clear": self._handle_clear,
        }

    def _client_kwargs(self) -> Dict[str, Any]:
        kwargs = {}
        if self.config.get("eventHubName"):
            kwargs["eventhub_name"] = self.config["eventHubName"]
        return kwargs

    async def connect(self):
        if self.connected:
            return
        from azure.eventhub.aio import EventHubProducerClient

        try:
            self._producer = EventHubProducerClient.from_connection_string(
                self.config["connectionString"], **self._client_kwargs()
            )
            await self._producer.get_eventhub_properties()
        except Exception as e:
            self._producer = None
            raise AdapterConnectionError(self.name, f"Failed to connect: {e}") from e

        self._starting_position = datetime.now(timezone.utc)
        self.connected = True
        logger.info("EventHub connected")

    async def disconnect(self):
        if self._producer is not None:
            await self._producer.close()
            self._producer = None
            logger.info("EventHub disconnected")
        self.received_events.clear()
        self.connected = False

    async def health_check(self) -> bool:
        if self._producer is None:
            return False
        try:
            await self._producer.get_eventhub_properties()
            return True
        except Exception as e:
            logger.debug(f"EventHub health check failed: {e}")
            return False

    # =========================================================================
    # Receiving
    # =========================================================================

    async def receive_until(self, on_body: Callable[[Any], bool], timeout_ms: float) -> bool:
        """
        Receive events until on_body returns True or timeout_ms elapses.

        Every received body is appended to received_events. Returns True
        when on_body stopped the receive, False on timeout. Errors raised
        by the receiving client propagate.
        """
        from azure.eventhub.aio import EventHubConsumerClient

        consumer = EventHubConsumerClient.from_connection_string(
            self.config["connectionString"],
            consumer_group=self.consumer_group,
            **self._client_kwargs(),
        )
        done = asyncio.Event()

        async def on_event(partition_context, event):
            if event is None:
                return
            body = event_body(event)
            self.received_events.append(body)
            if on_body(body):
                done.set()

        receiver = asyncio.create_task(
            consumer.receive(on_event=on_event, starting_position=self._starting_position)
        )
        waiter = asyncio.create_task(done.wait())
        try:
            await asyncio.wait(
                {receiver, waiter}, timeout=timeout_ms / 1000, return_when=asyncio.FIRST_COMPLETED
            )
            if receiver.done() and not receiver.cancelled() and receiver.exception():
                raise receiver.exception()
            return done.is_set()
        finally:
            waiter.cancel()
            await consumer.close()
            if not receiver.done():
                receiver.cancel()
                await asyncio.gather(receiver, return_exceptions=True)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_publish(self, params, ctx):
        from azure.eventhub import EventData

        messages = params.get("messages")
        if messages is None:
            messages = [self.require(params, "message", "publish")]

        batch_kwargs = {}
        if params.get("partitionKey"):
            batch_kwargs["partition_key"] = str(params["partitionKey"])
        batch = await self._producer.create_batch(**batch_kwargs)

        for message in messages:
            payload = message if isinstance(message, str) else json.dumps(message, default=str)
            try:
                batch.add(EventData(payload))
            except ValueError as e:
                raise AdapterError(self.name, "publish", "Event too large for batch") from e

        await self._producer.send_batch(batch)
        return {"count": len(messages)}

    async def _handle_wait_for(self, params, ctx):
        filter_spec = params.get("filter") or {}
        timeout = params.get("timeout") or DEFAULT_WAIT_TIMEOUT
        matched: List[Any] = []

        def on_body(body):
            if matches_filter(body, filter_spec):
                matched.append(body)
                return True
            return False

        if not await self.receive_until(on_body, timeout):
            raise OperationTimeoutError(f"waitFor {params.get('topic', '')} {filter_spec}", timeout)
        return matched[0]

    async def _handle_consume(self, params, ctx):
        count = params.get("count") or 1
        timeout = params.get("timeout") or DEFAULT_CONSUME_TIMEOUT
        events: List[Any] = []

        def on_body(body):
            events.append(body)
            return len(events) >= count

        await self.receive_until(on_body, timeout)
        return events[:count]

    async def _handle_clear(self, params, ctx):
        self.received_events.clear()
        return None
