"""
Client Data Source

Owns the store cache, the subscription table, the pending request table and
the connection state of one client. Everything that mutates them goes through
``get``, ``Store.subscribe``/unsubscribe and ``send_event``.

The subscription table is derived from the stores themselves: a key is live
exactly while its store has at least one handler. The 0→1 transition sends
``sub``, 1→0 sends ``unsub``, and every (re)connect sends one batched ``sub``
for all live keys.
"""

import asyncio
import logging
import time
from enum import Enum
from itertools import count
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from ..config import ClientConfig
from ..core.datastate import ActionEventDataState, TemplateEvent
from ..core.errors import ConnectionClosedError, ProtocolError
from ..core.store import Store, create_writable_stream
from ..protocol.messages import (
    EventMessage,
    EventResponseMessage,
    SubscribeMessage,
    UnsubscribeMessage,
    UpdateMessage,
    WireMessage,
    decode_server_message,
    encode,
)
from .requests import PendingRequests
from .transport import Transport, WebSocketTransport

logger = logging.getLogger(__name__)

ActionListener = Callable[[Any], None]


class ConnectionState(str, Enum):
    """Values published on ``ClientDataSource.state``"""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ClientDataSource:
    """
    Client side of the starwire protocol.

    Args:
        transport: Any ``Transport``; its callbacks are bound here
        config: Client configuration (timeouts, disconnect policy)
        loop: Event loop for futures and timers, defaults to the running loop
        clock: Monotonic clock used for request deadlines
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[ClientConfig] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.transport = transport
        self.config = config or ClientConfig()
        self._loop = loop
        self._stores: Dict[str, Store] = {}
        self._cache: Dict[str, Any] = {}
        self._requests = PendingRequests(clock)
        self._action_listeners: Dict[int, ActionListener] = {}
        self._listener_ids = count()
        self._set_state, self.state = create_writable_stream(None)

        transport.on_open = self._handle_open
        transport.on_message = self.handle_message
        transport.on_close = self._handle_close
        transport.on_error = self._handle_error

    # Stores

    def get(self, key: str) -> Store:
        """Return the store for ``key``, creating it on first use"""
        store = self._stores.get(key)
        if store is None:
            store = Store(
                key,
                read=lambda: self._cache.get(key),
                on_hot=self._subscribe_remote,
                on_cold=self._unsubscribe_remote,
            )
            self._stores[key] = store
        return store

    def subscribed_keys(self) -> List[str]:
        """Keys with at least one local handler"""
        return [key for key, store in self._stores.items() if store.subscriber_count > 0]

    def _subscribe_remote(self, key: str) -> None:
        self._send(SubscribeMessage(keys=[key]))

    def _unsubscribe_remote(self, key: str) -> None:
        self._send(UnsubscribeMessage(keys=[key]))

    # Events

    @property
    def pending_count(self) -> int:
        return len(self._requests)

    def on_event(self, listener: ActionListener) -> Callable[[], None]:
        """Register a local action listener; returns an unsubscribe function"""
        token = next(self._listener_ids)
        self._action_listeners[token] = listener

        def unsubscribe() -> None:
            self._action_listeners.pop(token, None)

        return unsubscribe

    def dispatch_actions(self, actions: Iterable[Any]) -> None:
        """Deliver action values to every local listener"""
        for value in actions:
            for listener in list(self._action_listeners.values()):
                try:
                    listener(value)
                except Exception:
                    logger.exception(f"Action listener failed for {value!r}")

    def send_event(self, event: Union[TemplateEvent, Dict[str, Any]]) -> Optional[asyncio.Future]:
        """
        Send an event raised by a resolved tree.

        Action events are delivered to local listeners and never reach the
        wire. Handler events are sent as ``evt`` and the returned future
        settles from the matching ``evt-res`` or fails with
        ``RequestTimeoutError`` once the deadline passes.

        Action events need no event loop: called outside one they return
        None instead of a completed future.
        """
        if not isinstance(event, TemplateEvent):
            event = TemplateEvent.model_validate(event)

        data_state = event.data_state
        if isinstance(data_state, ActionEventDataState):
            self.dispatch_actions([data_state.action])
            loop = self._current_loop()
            if loop is None:
                return None
            future = loop.create_future()
            future.set_result(None)
            return future

        loop = self._loop or asyncio.get_running_loop()
        future = loop.create_future()
        key = uuid4().hex
        timeout_ms = self.config.default_timeout_ms if data_state.timeout is None else data_state.timeout
        request = self._requests.add(key, future, timeout_ms)
        request.timer = loop.call_later(timeout_ms / 1000, self._requests.expire, request.deadline)
        self._send(EventMessage(key=key, event=event))
        return future

    def _current_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    # Connection lifecycle

    def _set_connection_state(self, state: ConnectionState) -> None:
        if self.state.get() != state:
            self._set_state(state)

    def _handle_open(self) -> None:
        logger.info("Connection open")
        self._set_connection_state(ConnectionState.CONNECTED)
        keys = self.subscribed_keys()
        if keys:
            self._send(SubscribeMessage(keys=keys))

    def _handle_close(self) -> None:
        logger.info("Connection closed")
        self._set_connection_state(ConnectionState.DISCONNECTED)
        self._handle_disconnect()

    def _handle_error(self, error: BaseException) -> None:
        logger.warning(f"Connection error: {error}")
        self._set_connection_state(ConnectionState.DISCONNECTED)
        self._handle_disconnect()

    def _handle_disconnect(self) -> None:
        pending = len(self._requests)
        if not pending:
            return
        if self.config.reject_pending_on_disconnect:
            self._requests.reject_all(ConnectionClosedError("Connection lost before the response arrived"))
            logger.info(f"Rejected {pending} pending request(s) after disconnect")
        else:
            logger.warning(f"{pending} request(s) still pending after disconnect; they settle on response or timeout")

    def close(self) -> None:
        """Reject pending requests and close the transport"""
        self._requests.reject_all(ConnectionClosedError("Data source closed"))
        self.transport.close()
        self._set_connection_state(ConnectionState.DISCONNECTED)

    # Wire

    def _send(self, message: WireMessage) -> None:
        self.transport.send(encode(message))

    def handle_message(self, data: Union[str, bytes]) -> None:
        """Apply one server message; malformed messages are logged and dropped"""
        try:
            message = decode_server_message(data)
        except ProtocolError as e:
            logger.warning(f"Dropping server message: {e}")
            return

        if isinstance(message, UpdateMessage):
            self._cache[message.key] = message.val
            store = self._stores.get(message.key)
            if store is not None:
                store.notify(message.val)
        elif isinstance(message, EventResponseMessage):
            res = message.res
            # Deadlines win over responses that arrive before their timer fires.
            self._requests.expire()
            if not self._requests.settle(message.key, res.ok, res.payload):
                logger.warning(
                    f"No pending request for event response {message.key}; "
                    f"it timed out or was already answered"
                )
                return
            if res.actions:
                self.dispatch_actions(res.actions)


def create_ws_data_source(url: str, config: Optional[ClientConfig] = None) -> ClientDataSource:
    """
    Create a client data source over a reconnecting WebSocket and start
    connecting. Must be called with a running event loop.
    """
    config = config or ClientConfig()
    transport = WebSocketTransport(
        url,
        reconnect_delay=config.reconnect_delay,
        max_reconnect_delay=config.max_reconnect_delay,
    )
    data_source = ClientDataSource(transport, config)
    transport.start()
    return data_source
