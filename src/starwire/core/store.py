"""
Observable stores and streams.

A ``Store`` is the client-side view of one server key: it reads the last
delivered value from its owner's cache and reports cold→hot / hot→cold
transitions so the owner can (un)subscribe on the wire.

A ``Stream`` is a standalone observable value, used for connection state.
"""

import inspect
import logging
from itertools import count
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
Handler = Callable[..., None]
Unsubscribe = Callable[[], None]


def _accepts_value(handler: Handler) -> bool:
    """True if the handler takes the new value as an argument"""
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return True
    for param in signature.parameters.values():
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD, param.VAR_POSITIONAL):
            return True
    return False


class _Observable:
    """Handler bookkeeping shared by Store and Stream"""

    def __init__(self):
        self._handlers: Dict[int, Tuple[Handler, bool]] = {}
        self._ids = count()

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    def _add(self, handler: Handler) -> int:
        token = next(self._ids)
        self._handlers[token] = (handler, _accepts_value(handler))
        return token

    def _remove(self, token: int) -> bool:
        return self._handlers.pop(token, None) is not None

    def notify(self, value: Any) -> None:
        """
        Call every handler with ``value``; handlers added during delivery wait
        for the next one. A failing handler is logged and the rest still run.
        """
        for token, (handler, with_value) in list(self._handlers.items()):
            if token not in self._handlers:
                continue
            try:
                if with_value:
                    handler(value)
                else:
                    handler()
            except Exception:
                logger.exception(f"Subscriber of {self!r} failed")


class Store(_Observable):
    """
    A named observable value cell.

    Args:
        key: Store key, the store's identity
        read: Returns the last known value (None before the first delivery)
        on_hot: Called with the key when the first subscriber is added
        on_cold: Called with the key when the last subscriber is removed
    """

    def __init__(
        self,
        key: str,
        read: Callable[[], Any],
        on_hot: Optional[Callable[[str], None]] = None,
        on_cold: Optional[Callable[[str], None]] = None,
    ):
        super().__init__()
        self.key = key
        self._read = read
        self._on_hot = on_hot
        self._on_cold = on_cold

    def get(self) -> Any:
        return self._read()

    def subscribe(self, handler: Handler) -> Unsubscribe:
        """
        Register a zero-argument or value-argument callback.

        Returns an idempotent unsubscribe function.
        """
        was_cold = self.subscriber_count == 0
        token = self._add(handler)
        if was_cold:
            logger.debug(f"Store {self.key!r} is now hot")
            if self._on_hot:
                self._on_hot(self.key)

        def unsubscribe() -> None:
            if not self._remove(token):
                return
            if self.subscriber_count == 0:
                logger.debug(f"Store {self.key!r} is now cold")
                if self._on_cold:
                    self._on_cold(self.key)

        return unsubscribe

    def __repr__(self) -> str:
        return f"Store({self.key!r}, subscribers={self.subscriber_count})"


class Stream(_Observable, Generic[T]):
    """Observable value with get/subscribe, written through ``create_writable_stream``"""

    def __init__(self, initial: T):
        super().__init__()
        self._value = initial

    def get(self) -> T:
        return self._value

    def subscribe(self, handler: Handler) -> Unsubscribe:
        token = self._add(handler)

        def unsubscribe() -> None:
            self._remove(token)

        return unsubscribe

    def _set(self, value: T) -> None:
        self._value = value
        self.notify(value)


def create_writable_stream(initial: T) -> Tuple[Callable[[T], None], Stream]:
    """Return ``(set_state, stream)``; only the holder of ``set_state`` can write."""
    stream = Stream(initial)
    return stream._set, stream
