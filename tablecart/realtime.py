"""Realtime cart channel - session-scoped push events.

Two events reach the client:

- ``cart:updated`` carries a full cart snapshot (or null);
- ``cart:error`` carries ``{message, details?, originatingEvent?}``.

``InMemoryCartChannel`` fans out inside one process (tests, embedding).
``RedisStreamCartChannel`` reads one Redis Stream per session; producers
append with ``emit_cart_updated``/``emit_cart_error``.
"""

import asyncio
import json
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field
from redis.asyncio import Redis

from tablecart.config import get_realtime_poll_interval
from tablecart.db import RedisKeys, TTL, get_redis
from tablecart.logging import get_logger, sanitize_id_for_logging

logger = get_logger(__name__)

CART_UPDATED = "cart:updated"
CART_ERROR = "cart:error"

# Maximum number of entries read per stream per poll
MAX_EVENTS_PER_POLL = 10

# Largest sequence part of a stream entry id
MAX_STREAM_SEQ = 2**64 - 1

Handler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class CartErrorPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    details: Any = None
    originating_event: Optional[str] = Field(default=None, alias="originatingEvent")


class CartChannel(Protocol):
    def subscribe(self, session_id: str, event: str, handler: Handler) -> Unsubscribe:
        ...


class _HandlerRegistry:
    """(session_id, event) -> handlers, shared by both channel flavours."""

    def __init__(self):
        self._handlers: Dict[Tuple[str, str], List[Handler]] = defaultdict(list)

    def add(self, session_id: str, event: str, handler: Handler) -> None:
        self._handlers[(session_id, event)].append(handler)

    def remove(self, session_id: str, event: str, handler: Handler) -> None:
        handlers = self._handlers.get((session_id, event))
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[(session_id, event)]

    def has_session(self, session_id: str) -> bool:
        return any(key[0] == session_id for key in self._handlers)

    def count(self, session_id: Optional[str] = None) -> int:
        return sum(
            len(handlers)
            for (sid, _), handlers in self._handlers.items()
            if session_id is None or sid == session_id
        )

    def dispatch(self, session_id: str, event: str, payload: Any) -> int:
        handlers = list(self._handlers.get((session_id, event), ()))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception(
                    f"Handler for {event} failed (session {sanitize_id_for_logging(session_id)})"
                )
        return len(handlers)


class InMemoryCartChannel:
    """Synchronous in-process channel."""

    def __init__(self):
        self._registry = _HandlerRegistry()

    def subscribe(self, session_id: str, event: str, handler: Handler) -> Unsubscribe:
        self._registry.add(session_id, event, handler)
        return lambda: self._registry.remove(session_id, event, handler)

    def publish(self, session_id: str, event: str, payload: Any) -> int:
        """Deliver to this session's subscribers; returns how many were called."""
        return self._registry.dispatch(session_id, event, payload)

    def handler_count(self, session_id: Optional[str] = None) -> int:
        return self._registry.count(session_id)


def _encode_event(event: str, payload: Any) -> Dict[str, str]:
    return {"data": json.dumps({"event": event, "data": payload}, default=str)}


def _parse_stream_id(entry_id: str) -> Tuple[int, int]:
    ms, _, seq = entry_id.partition("-")
    return int(ms), int(seq or 0)


def _position_now() -> str:
    # Last possible id of the previous millisecond; XREAD returns strictly newer entries
    return f"{int(time.time() * 1000) - 1}-{MAX_STREAM_SEQ}"


class RedisStreamCartChannel:
    """
    Reads ``stream:realtime:cart:<session_id>`` and dispatches its entries.

    A reader task starts with the first handler of a session and is cancelled
    with the last one. Only entries appended after ``subscribe()`` returned
    are delivered; the initial snapshot comes from the REST API.

    The read position is pinned from the local clock when the reader is
    started, and pulled back to the stream's tail on the first read if the
    local clock runs ahead of the Redis server.
    """

    def __init__(
        self,
        redis: Optional[Redis] = None,
        block_ms: Optional[int] = None,
    ):
        self._redis = redis
        self._registry = _HandlerRegistry()
        self._readers: Dict[str, asyncio.Task] = {}
        self._last_ids: Dict[str, str] = {}
        self._unsettled: Set[str] = set()
        if block_ms is None:
            block_ms = int(get_realtime_poll_interval() * 1000)
        self.block_ms = block_ms

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def subscribe(self, session_id: str, event: str, handler: Handler) -> Unsubscribe:
        """
        Register ``handler`` for one session's ``event``.

        Must be called from inside the running event loop: the first handler
        of a session starts its reader task. Without a loop ``RuntimeError``
        is raised and nothing is registered.
        """
        if session_id not in self._readers:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "RedisStreamCartChannel.subscribe must be called from a running event loop"
                ) from None
            self._last_ids[session_id] = _position_now()
            self._unsettled.add(session_id)
            self._readers[session_id] = loop.create_task(self._read_loop(session_id))
        self._registry.add(session_id, event, handler)

        def unsubscribe() -> None:
            self._registry.remove(session_id, event, handler)
            if not self._registry.has_session(session_id):
                self._stop_reader(session_id)

        return unsubscribe

    def handler_count(self, session_id: Optional[str] = None) -> int:
        return self._registry.count(session_id)

    def _stop_reader(self, session_id: str) -> None:
        task = self._readers.pop(session_id, None)
        if task is not None:
            task.cancel()
        self._last_ids.pop(session_id, None)
        self._unsettled.discard(session_id)

    async def close(self) -> None:
        tasks = list(self._readers.values())
        for session_id in list(self._readers):
            self._stop_reader(session_id)
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _start_position(self, session_id: str) -> str:
        latest = await self.redis.xrevrange(RedisKeys.cart_stream(session_id), count=1)
        return latest[0][0] if latest else "0-0"

    async def _settle_position(self, session_id: str) -> None:
        tail = await self._start_position(session_id)
        pinned = self._last_ids.get(session_id)
        if pinned is None or _parse_stream_id(tail) < _parse_stream_id(pinned):
            self._last_ids[session_id] = tail
        self._unsettled.discard(session_id)

    async def read_once(self, session_id: str, block_ms: Optional[int] = None) -> int:
        """Read and dispatch the next batch; returns the number of entries seen."""
        if session_id not in self._last_ids or session_id in self._unsettled:
            await self._settle_position(session_id)

        stream_key = RedisKeys.cart_stream(session_id)
        results = await self.redis.xread(
            {stream_key: self._last_ids[session_id]},
            count=MAX_EVENTS_PER_POLL,
            block=block_ms,
        )
        seen = 0
        for _key, entries in results or []:
            for entry_id, fields in entries:
                self._last_ids[session_id] = entry_id
                seen += 1
                self._dispatch_entry(session_id, stream_key, fields)
        return seen

    def _dispatch_entry(self, session_id: str, stream_key: str, fields: Dict[str, str]) -> None:
        raw = fields.get("data", "{}")
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Invalid JSON in stream {stream_key}: {raw}")
            return
        event = message.get("event")
        if event not in (CART_UPDATED, CART_ERROR):
            logger.debug(f"Ignoring {event!r} on {stream_key}")
            return
        self._registry.dispatch(session_id, event, message.get("data"))

    async def _read_loop(self, session_id: str) -> None:
        while True:
            try:
                await self.read_once(session_id, block_ms=self.block_ms)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"Cart stream read failed for session {sanitize_id_for_logging(session_id)}: {e}",
                    exc_info=True,
                )
                await asyncio.sleep(self.block_ms / 1000 or 1.0)

    async def emit(self, session_id: str, event: str, payload: Any) -> str:
        stream_key = RedisKeys.cart_stream(session_id)
        entry_id = await self.redis.xadd(stream_key, _encode_event(event, payload))
        await self.redis.expire(stream_key, TTL.CART_STREAM)
        logger.debug(f"Emitted {event} for session {sanitize_id_for_logging(session_id)}")
        return entry_id


async def emit_cart_updated(
    session_id: str, cart: Optional[Dict[str, Any]], redis: Optional[Redis] = None
) -> str:
    """Append an authoritative snapshot (wire-shaped dict or None)."""
    return await RedisStreamCartChannel(redis=redis, block_ms=0).emit(session_id, CART_UPDATED, cart)


async def emit_cart_error(
    session_id: str,
    message: str,
    details: Any = None,
    originating_event: Optional[str] = None,
    redis: Optional[Redis] = None,
) -> str:
    payload = CartErrorPayload(
        message=message, details=details, originating_event=originating_event
    ).model_dump(by_alias=True, exclude_none=True)
    return await RedisStreamCartChannel(redis=redis, block_ms=0).emit(session_id, CART_ERROR, payload)
