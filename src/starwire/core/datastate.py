"""
Data State Model

Tagged values describing a render tree: components, cross-store references
and event placeholders. On the wire every tagged value is a JSON object with
a ``$`` field; in Python the same shapes are available as pydantic models so
servers can build trees with typed helpers and attach handler callables.

The type guards and ``lookup_value`` accept both plain dicts (what the client
receives) and the models (what the server usually stores).
"""

import inspect
from enum import Enum
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

JSONValue = Any
PathSegment = Union[str, int]
RefPath = Union[str, List[PathSegment]]


class DataStateType(str, Enum):
    """Values of the ``$`` tag"""
    COMPONENT = "component"
    REF = "ref"
    EVENT = "event"


class DataStateModel(BaseModel):
    """Base class for tagged data state values. Instances are immutable."""
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True, frozen=True)


class ComponentDataState(DataStateModel):
    """One renderable node. ``key`` disambiguates siblings."""
    tag: Literal["component"] = Field(default="component", alias="$")
    component: str
    key: Optional[str] = None
    children: JSONValue = None
    props: Optional[Dict[str, JSONValue]] = None


class ReferencedDataState(DataStateModel):
    """Pointer into another store: a bare key or ``[store_key, *segments]``"""
    tag: Literal["ref"] = Field(default="ref", alias="$")
    ref: RefPath


class ActionEventDataState(DataStateModel):
    """Purely local event; never sent over the wire"""
    tag: Literal["event"] = Field(default="event", alias="$")
    action: JSONValue = None


class HandlerEventDataState(DataStateModel):
    """
    Server-side handler identified by an opaque key.

    ``handler`` only exists on the server and is never serialized.
    ``timeout`` is in milliseconds.
    """
    tag: Literal["event"] = Field(default="event", alias="$")
    key: str
    is_async: bool = Field(default=False, alias="async")
    timeout: Optional[int] = None
    handler: Optional[Callable[..., Any]] = Field(default=None, exclude=True)


def _event_kind(value: Any) -> str:
    if isinstance(value, dict):
        return "handler" if "key" in value else "action"
    return "handler" if isinstance(value, HandlerEventDataState) else "action"


EventDataState = Annotated[
    Union[
        Annotated[HandlerEventDataState, Tag("handler")],
        Annotated[ActionEventDataState, Tag("action")],
    ],
    Discriminator(_event_kind),
]


class EventTarget(BaseModel):
    """
    Where on the server's model an event originated.

    ``path`` is ``[store_key, *segments]`` addressing the event node itself.
    """
    model_config = ConfigDict(populate_by_name=True)

    key: Optional[str] = None
    component: str
    prop_key: str = Field(alias="propKey")
    path: List[PathSegment]


class TemplateEvent(BaseModel):
    """An event raised by a resolved tree, carried by the ``evt`` message"""
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    target: EventTarget
    data_state: EventDataState = Field(alias="dataState")
    payload: JSONValue = None


class ServerResponse(BaseModel):
    """Envelope returned for a handler event"""
    ok: bool = True
    payload: JSONValue = None
    actions: Optional[List[JSONValue]] = None


# Type guards

def _tag(obj: Any) -> Optional[str]:
    if isinstance(obj, dict):
        return obj.get("$")
    if isinstance(obj, DataStateModel):
        return obj.tag
    return None


def is_component(obj: Any) -> bool:
    return _tag(obj) == DataStateType.COMPONENT.value


def is_ref(obj: Any) -> bool:
    return _tag(obj) == DataStateType.REF.value


def is_composite(obj: Any) -> bool:
    """Component or ref"""
    return _tag(obj) in (DataStateType.COMPONENT.value, DataStateType.REF.value)


def is_event(obj: Any) -> bool:
    return _tag(obj) == DataStateType.EVENT.value


def is_handler_event(obj: Any) -> bool:
    if not is_event(obj):
        return False
    if isinstance(obj, dict):
        return "key" in obj
    return isinstance(obj, HandlerEventDataState)


def is_action_event(obj: Any) -> bool:
    return is_event(obj) and not is_handler_event(obj)


def field_value(obj: Any, name: str, default: Any = None) -> Any:
    """Read a wire field from either a dict or a model (by alias or name)."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    if isinstance(obj, BaseModel):
        for field_name, info in type(obj).model_fields.items():
            if field_name == name or info.alias == name:
                return getattr(obj, field_name)
    return default


# Path helpers

def ref_path(ref_value: Any) -> Tuple[str, List[PathSegment]]:
    """Split a ref (node, bare key or list) into ``(store_key, segments)``."""
    if is_ref(ref_value):
        ref_value = field_value(ref_value, "ref")
    if isinstance(ref_value, str):
        return ref_value, []
    if isinstance(ref_value, (list, tuple)) and ref_value:
        store_key, *segments = ref_value
        return str(store_key), list(segments)
    raise ValueError(f"Invalid ref: {ref_value!r}")


def _list_index(segment: Any) -> Optional[int]:
    if isinstance(segment, bool):
        return None
    if isinstance(segment, int):
        return segment
    if isinstance(segment, str) and segment.isdigit():
        return int(segment)
    return None


def lookup_value(value: Any, path: List[PathSegment]) -> Any:
    """
    Follow ``path`` inside ``value``.

    Returns None as soon as a segment is absent; a missing path means
    "no content yet", not an error.
    """
    for segment in path:
        if value is None:
            return None
        if isinstance(value, BaseModel):
            value = field_value(value, str(segment))
        elif isinstance(value, dict):
            if segment in value:
                value = value[segment]
            else:
                value = value.get(str(segment))
        elif isinstance(value, (list, tuple)):
            index = _list_index(segment)
            if index is None or not 0 <= index < len(value):
                return None
            value = value[index]
        else:
            return None
    return value


def to_json(value: Any) -> JSONValue:
    """
    Normalize models, dicts and lists into plain JSON-compatible values.

    Server-only handler callables and unset optional fields are dropped.
    """
    if isinstance(value, BaseModel):
        data = {}
        for name, info in type(value).model_fields.items():
            if info.exclude:
                continue
            item = getattr(value, name)
            if item is None and not info.is_required():
                continue
            data[info.alias or name] = to_json(item)
        return data
    if isinstance(value, dict):
        drop_handler = value.get("$") == DataStateType.EVENT.value
        return {
            k: to_json(v) for k, v in value.items()
            if not (drop_handler and k == "handler")
        }
    if isinstance(value, (list, tuple)):
        return [to_json(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value


# Builders

def component(component_id: str, children: JSONValue = None, key: Optional[str] = None, **props) -> ComponentDataState:
    """Build a component node: ``component("Button", "Hi", onPress=event(fn))``"""
    return ComponentDataState(component=component_id, key=key, children=children, props=props or None)


def ref(store_key: str, *segments: PathSegment) -> ReferencedDataState:
    """Build a ref to ``store_key`` or to a path inside it"""
    if segments:
        return ReferencedDataState(ref=[store_key, *segments])
    return ReferencedDataState(ref=store_key)


def action(value: JSONValue) -> ActionEventDataState:
    return ActionEventDataState(action=value)


def event(handler: Callable[..., Any], timeout: Optional[int] = None, is_async: Optional[bool] = None) -> HandlerEventDataState:
    """
    Wrap a server-side callable as a handler event.

    Args:
        handler: Sync or async callable receiving the event payload
        timeout: Client-side response deadline in milliseconds
        is_async: Defaults to whether ``handler`` is a coroutine function
    """
    if is_async is None:
        is_async = inspect.iscoroutinefunction(handler)
    return HandlerEventDataState(key=uuid4().hex, is_async=is_async, timeout=timeout, handler=handler)


def response(payload: JSONValue = None, actions: Optional[List[JSONValue]] = None) -> ServerResponse:
    return ServerResponse(ok=True, payload=payload, actions=actions)


def error_response(error: Union[BaseException, str]) -> ServerResponse:
    if isinstance(error, BaseException):
        payload = {"error": type(error).__name__, "message": str(error)}
    else:
        payload = {"error": "Error", "message": error}
    return ServerResponse(ok=False, payload=payload)
