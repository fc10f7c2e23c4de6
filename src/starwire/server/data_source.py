"""
Server Data Source

Authoritative store values, per-connection subscriptions and event dispatch.

``update`` is synchronous and enqueues ``up`` messages on each subscribed
connection's FIFO queue, so updates for one key reach a client in the order
they were issued. Handler failures and protocol violations are answered or
logged; they never close a connection.
"""

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
from uuid import uuid4

from ..core.datastate import (
    ServerResponse,
    TemplateEvent,
    error_response,
    field_value,
    is_handler_event,
    lookup_value,
    response,
    to_json,
)
from ..core.errors import MissingHandlerError, ProtocolError
from ..protocol.messages import (
    EventMessage,
    EventResponseMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    UpdateMessage,
    WireMessage,
    decode_client_message,
    encode,
)

logger = logging.getLogger(__name__)

Factory = Callable[[], Union[Any, Awaitable[Any]]]


class Connection:
    """
    One client connection as seen by the server.

    ``send`` is synchronous: frames are queued and drained in order by
    ``run_writer``, which the web adapter runs next to the read loop.
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.id = connection_id or uuid4().hex
        self.subscriptions: Set[str] = set()
        self.created_at = time.time()
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def send(self, message: WireMessage) -> None:
        if self.closed:
            return
        self._queue.put_nowait(encode(message))

    async def run_writer(self, send_text: Callable[[str], Awaitable[None]]) -> None:
        """Drain queued frames into ``send_text`` until cancelled"""
        while True:
            data = await self._queue.get()
            await send_text(data)

    def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"Connection({self.id!r}, subscriptions={sorted(self.subscriptions)})"


class ServerDataSource:
    """
    Owns the authoritative value of every store key.

    Values are replaced wholesale by ``update``. ``define`` registers a
    computed store whose factory runs on demand instead.
    """

    ROOT_KEY = ""

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._factories: Dict[str, Factory] = {}
        self.connections: Dict[str, Connection] = {}
        self._subscribers: Dict[str, Set[str]] = defaultdict(set)

    # Values

    def update(self, key: str, value: Any) -> None:
        """Replace the value of ``key`` and push it to subscribed connections"""
        self._factories.pop(key, None)
        self._values[key] = value
        subscribers = self._subscribers.get(key)
        if not subscribers:
            return
        message = UpdateMessage(key=key, val=to_json(value))
        for connection_id in list(subscribers):
            connection = self.connections.get(connection_id)
            if connection is not None:
                connection.send(message)
        logger.debug(f"Pushed update of {key!r} to {len(subscribers)} connection(s)")

    def update_root(self, value: Any) -> None:
        self.update(self.ROOT_KEY, value)

    def define(self, key: str, factory: Factory) -> None:
        """Serve ``key`` from ``factory`` (sync or async), evaluated on every read"""
        self._values.pop(key, None)
        self._factories[key] = factory

    def has(self, key: str) -> bool:
        return key in self._values or key in self._factories

    async def get(self, key: str) -> Any:
        """Current value of ``key``; factories are evaluated"""
        factory = self._factories.get(key)
        if factory is not None:
            value = factory()
            if inspect.isawaitable(value):
                value = await value
            return value
        return self._values.get(key)

    def subscribers(self, key: str) -> Set[str]:
        """Ids of connections subscribed to ``key``"""
        return set(self._subscribers.get(key, ()))

    # Connections

    def connect(self, connection: Optional[Connection] = None) -> Connection:
        connection = connection or Connection()
        self.connections[connection.id] = connection
        logger.info(f"Connection {connection.id} opened")
        return connection

    def disconnect(self, connection: Connection) -> None:
        self._unsubscribe(connection, list(connection.subscriptions))
        connection.close()
        self.connections.pop(connection.id, None)
        logger.info(f"Connection {connection.id} closed")

    async def handle_message(self, connection: Connection, raw: Union[str, bytes, dict]) -> None:
        """Apply one client message; protocol errors are logged and dropped"""
        if connection.closed or connection.id not in self.connections:
            logger.debug(f"Ignoring message for closed connection {connection.id}")
            return
        try:
            message = decode_client_message(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping message from {connection.id}: {e}")
            return

        if isinstance(message, SubscribeMessage):
            await self._subscribe(connection, message.keys)
        elif isinstance(message, UnsubscribeMessage):
            self._unsubscribe(connection, message.keys)
        elif isinstance(message, EventMessage):
            await self._handle_event(connection, message)

    async def _subscribe(self, connection: Connection, keys: List[str]) -> None:
        if connection.closed:
            return
        for key in keys:
            connection.subscriptions.add(key)
            self._subscribers[key].add(connection.id)
        for key in keys:
            if not self.has(key):
                continue
            try:
                value = await self.get(key)
            except Exception:
                logger.exception(f"Failed to compute value of {key!r} for {connection.id}")
                continue
            connection.send(UpdateMessage(key=key, val=to_json(value)))

    def _unsubscribe(self, connection: Connection, keys: List[str]) -> None:
        for key in keys:
            connection.subscriptions.discard(key)
            subscribers = self._subscribers.get(key)
            if subscribers is None:
                continue
            subscribers.discard(connection.id)
            if not subscribers:
                del self._subscribers[key]

    # Events

    async def _handle_event(self, connection: Connection, message: EventMessage) -> None:
        res = await self.dispatch_event(message.event)
        key = message.key or field_value(message.event.data_state, "key") or ""
        connection.send(EventResponseMessage(key=key, res=res))

    async def dispatch_event(self, event: TemplateEvent) -> ServerResponse:
        """
        Run the handler bound at ``event.target.path`` and wrap its result.

        The first path segment names the store, the rest addresses the
        handler event inside the store's current value.
        """
        try:
            path = event.target.path
            if not path:
                raise MissingHandlerError("Event target has no path")
            store_key, *lookup_path = path
            node = lookup_value(await self.get(str(store_key)), lookup_path)
            handler = field_value(node, "handler") if is_handler_event(node) else None
            if not callable(handler):
                raise MissingHandlerError(
                    f"Missing event handler on the server for {event.target.component}.{event.target.prop_key} at {path}"
                )
            result = handler(event.payload)
            if inspect.isawaitable(result):
                result = await result
        except MissingHandlerError as e:
            logger.warning(str(e))
            return error_response(e)
        except Exception as e:
            logger.exception(f"Event handler at {event.target.path} failed")
            return error_response(e)

        if isinstance(result, ServerResponse):
            return result
        return response(to_json(result))
