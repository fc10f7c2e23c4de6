"""
Starwire Errors

Exception taxonomy shared by the client, the server and the resolver.
Render errors are returned as values inside the resolved tree; everything
else is raised or used to reject a pending future.
"""

from typing import Any, Optional


class StarwireError(Exception):
    """Base exception for all starwire errors"""
    pass


class ProtocolError(StarwireError):
    """Raised when a wire message is malformed or carries an unknown tag"""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class RenderError(StarwireError):
    """
    A render failure scoped to one tree position.

    Instances are placed in the resolved tree in place of the failing node
    so parents keep rendering their other children.
    """

    def __init__(self, message: str, position: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    def __repr__(self) -> str:
        return f"RenderError({self.message!r}, position={self.position!r})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, RenderError):
            return NotImplemented
        return self.message == other.message and self.position == other.position

    __hash__ = StarwireError.__hash__


class RequestTimeoutError(StarwireError, TimeoutError):
    """A handler event did not receive its response before the deadline"""

    def __init__(self, key: str, timeout_ms: int):
        super().__init__(f"Request timeout: no response for {key} within {timeout_ms}ms")
        self.key = key
        self.timeout_ms = timeout_ms


class EventResponseError(StarwireError):
    """The server answered a handler event with ``ok: false``"""

    def __init__(self, payload: Any):
        message = payload.get("message") if isinstance(payload, dict) else payload
        super().__init__(f"Event handler failed: {message}")
        self.payload = payload


class ConnectionClosedError(StarwireError):
    """The data source was closed while requests were still pending"""
    pass


class MissingHandlerError(StarwireError):
    """The event target on the server is not a handler event"""
    pass
