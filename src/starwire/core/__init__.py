"""
Starwire Core Module

Framework-agnostic building blocks: the data state model, stores and errors.
"""

from .datastate import (
    DataStateType,
    ComponentDataState,
    ReferencedDataState,
    ActionEventDataState,
    HandlerEventDataState,
    EventTarget,
    TemplateEvent,
    ServerResponse,
    is_component,
    is_ref,
    is_composite,
    is_event,
    is_handler_event,
    is_action_event,
    lookup_value,
    ref_path,
    to_json,
    component,
    ref,
    action,
    event,
    response,
    error_response,
)
from .store import Store, Stream, create_writable_stream
from .errors import (
    StarwireError,
    ProtocolError,
    RenderError,
    RequestTimeoutError,
    EventResponseError,
    ConnectionClosedError,
    MissingHandlerError,
)

__all__ = [
    "DataStateType",
    "ComponentDataState",
    "ReferencedDataState",
    "ActionEventDataState",
    "HandlerEventDataState",
    "EventTarget",
    "TemplateEvent",
    "ServerResponse",
    "is_component",
    "is_ref",
    "is_composite",
    "is_event",
    "is_handler_event",
    "is_action_event",
    "lookup_value",
    "ref_path",
    "to_json",
    "component",
    "ref",
    "action",
    "event",
    "response",
    "error_response",
    "Store",
    "Stream",
    "create_writable_stream",
    "StarwireError",
    "ProtocolError",
    "RenderError",
    "RequestTimeoutError",
    "EventResponseError",
    "ConnectionClosedError",
    "MissingHandlerError",
]
