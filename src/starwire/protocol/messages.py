"""
Wire Protocol

The five JSON messages exchanged over a starwire connection, tagged by ``$``:

    client → server   sub      {keys}
    client → server   unsub    {keys}
    client → server   evt      {key?, event}
    server → client   up       {key, val}
    server → client   evt-res  {key, res}

``evt.key`` is a correlation id minted by the client; the server echoes it
in ``evt-res``. Older clients that omit it are answered with the handler
event's own key.
"""

import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError

from ..core.datastate import JSONValue, ServerResponse, TemplateEvent, to_json
from ..core.errors import ProtocolError


class WireMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)


class SubscribeMessage(WireMessage):
    tag: Literal["sub"] = Field(default="sub", alias="$")
    keys: List[str]


class UnsubscribeMessage(WireMessage):
    tag: Literal["unsub"] = Field(default="unsub", alias="$")
    keys: List[str]


class EventMessage(WireMessage):
    tag: Literal["evt"] = Field(default="evt", alias="$")
    key: Optional[str] = None
    event: TemplateEvent


class UpdateMessage(WireMessage):
    tag: Literal["up"] = Field(default="up", alias="$")
    key: str
    val: JSONValue


class EventResponseMessage(WireMessage):
    tag: Literal["evt-res"] = Field(default="evt-res", alias="$")
    key: str
    res: ServerResponse


def _message_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("$")
    return getattr(value, "tag", None)


ClientMessage = Annotated[
    Union[
        Annotated[SubscribeMessage, Tag("sub")],
        Annotated[UnsubscribeMessage, Tag("unsub")],
        Annotated[EventMessage, Tag("evt")],
    ],
    Discriminator(_message_tag),
]

ServerMessage = Annotated[
    Union[
        Annotated[UpdateMessage, Tag("up")],
        Annotated[EventResponseMessage, Tag("evt-res")],
    ],
    Discriminator(_message_tag),
]

_client_adapter = TypeAdapter(ClientMessage)
_server_adapter = TypeAdapter(ServerMessage)


def _decode(adapter: TypeAdapter, raw: Union[str, bytes, dict]) -> Any:
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed message: {e}", raw) from e
    if not isinstance(raw, dict):
        raise ProtocolError(f"Message must be a JSON object, got {type(raw).__name__}", raw)
    try:
        return adapter.validate_python(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid message {raw.get('$')!r}: {e.error_count()} validation error(s)", raw) from e


def decode_client_message(raw: Union[str, bytes, dict]) -> Union[SubscribeMessage, UnsubscribeMessage, EventMessage]:
    """Parse a message sent by a client. Raises ProtocolError."""
    return _decode(_client_adapter, raw)


def decode_server_message(raw: Union[str, bytes, dict]) -> Union[UpdateMessage, EventResponseMessage]:
    """Parse a message sent by the server. Raises ProtocolError."""
    return _decode(_server_adapter, raw)


def encode(message: WireMessage) -> str:
    return json.dumps(to_json(message))
