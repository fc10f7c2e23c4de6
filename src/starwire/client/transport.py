"""
Client transports.

A transport moves text frames between a client data source and a server
and reports connection lifecycle through four callbacks. Any object
honouring the ``Transport`` contract can be substituted (tests use an
in-memory one).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

logger = logging.getLogger(__name__)


class Transport(ABC):
    """
    Abstract transport contract.

    Owners assign ``on_open``, ``on_message``, ``on_close`` and ``on_error``;
    implementations call them through the ``_emit_*`` helpers, which never
    let a callback failure tear down the connection.
    """

    def __init__(self):
        self.on_open: Optional[Callable[[], None]] = None
        self.on_message: Optional[Callable[[str], None]] = None
        self.on_close: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None

    @abstractmethod
    def send(self, data: str) -> None:
        """Queue a text frame for delivery"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection and stop reconnecting"""
        pass

    def _emit(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"{self.__class__.__name__} callback {getattr(callback, '__name__', callback)} failed")

    def _emit_open(self) -> None:
        self._emit(self.on_open)

    def _emit_message(self, data: str) -> None:
        self._emit(self.on_message, data)

    def _emit_close(self) -> None:
        self._emit(self.on_close)

    def _emit_error(self, error: BaseException) -> None:
        self._emit(self.on_error, error)


class WebSocketTransport(Transport):
    """
    Reconnecting WebSocket transport built on ``websockets``.

    Each successful connection gets a fresh outbound queue; frames sent while
    disconnected are dropped, since the data source re-subscribes every live
    key when the connection opens again.

    Args:
        url: ``ws://`` or ``wss://`` endpoint
        reconnect_delay: Initial delay before reconnecting, in seconds
        max_reconnect_delay: Upper bound for the exponential backoff
        backoff: Multiplier applied to the delay after each failed attempt
    """

    def __init__(
        self,
        url: str,
        reconnect_delay: float = 1.0,
        max_reconnect_delay: float = 30.0,
        backoff: float = 1.5,
    ):
        super().__init__()
        self.url = url
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.backoff = backoff
        self._out_q: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def connected(self) -> bool:
        return self._out_q is not None

    def start(self) -> asyncio.Task:
        """Start the connect/reconnect loop on the running event loop"""
        if self._task is None or self._task.done():
            self._stopped = False
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self._task

    def send(self, data: str) -> None:
        if self._out_q is None:
            logger.debug(f"Dropping frame while disconnected from {self.url}")
            return
        self._out_q.put_nowait(data)

    def close(self) -> None:
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._out_q = None

    async def _sender(self, ws, queue: asyncio.Queue) -> None:
        while True:
            data = await queue.get()
            await ws.send(data)

    async def _run(self) -> None:
        delay = self.reconnect_delay
        logger.info(f"Connecting to {self.url}")
        while not self._stopped:
            try:
                async with websockets.connect(self.url) as ws:
                    logger.info(f"Connected to {self.url}")
                    delay = self.reconnect_delay
                    self._out_q = asyncio.Queue()
                    sender = asyncio.create_task(self._sender(ws, self._out_q))
                    self._emit_open()
                    try:
                        async for message in ws:
                            if isinstance(message, bytes):
                                message = message.decode("utf-8")
                            self._emit_message(message)
                    finally:
                        sender.cancel()
                        self._out_q = None
                logger.info(f"Connection to {self.url} closed")
                self._emit_close()
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                self._out_q = None
                logger.info(f"Connection to {self.url} failed ({e}); retrying in {delay:.1f}s")
                self._emit_error(e)

            if self._stopped:
                break
            await asyncio.sleep(delay)
            delay = min(self.max_reconnect_delay, delay * self.backoff)
