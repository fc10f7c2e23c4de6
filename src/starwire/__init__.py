"""
Starwire - Server-Driven Reactive Trees over WebSockets

A server owns named stores holding data state trees: components, refs into
other stores and event placeholders. Clients subscribe to the stores they
render, receive every update over one WebSocket and send handler events back
as request/response pairs.
"""

from .config import (
    ClientConfig,
    LoggingConfig,
    RenderConfig,
    ServerConfig,
    StarwireConfig,
    configure_logging,
)
from .core import (
    ActionEventDataState,
    ComponentDataState,
    ConnectionClosedError,
    EventResponseError,
    EventTarget,
    HandlerEventDataState,
    MissingHandlerError,
    ProtocolError,
    ReferencedDataState,
    RenderError,
    RequestTimeoutError,
    ServerResponse,
    StarwireError,
    Store,
    TemplateEvent,
    action,
    component,
    error_response,
    event,
    ref,
    response,
)
from .client import ClientDataSource, ConnectionState, WebSocketTransport, create_ws_data_source
from .server import ServerDataSource, create_app, mount, serve
from .render import ComponentRegistry, ResolvedComponent, Template

__version__ = "0.1.0"

__all__ = [
    # Configuration
    'ClientConfig',
    'LoggingConfig',
    'RenderConfig',
    'ServerConfig',
    'StarwireConfig',
    'configure_logging',

    # Data state
    'ActionEventDataState',
    'ComponentDataState',
    'EventTarget',
    'HandlerEventDataState',
    'ReferencedDataState',
    'ServerResponse',
    'TemplateEvent',
    'action',
    'component',
    'error_response',
    'event',
    'ref',
    'response',
    'Store',

    # Errors
    'ConnectionClosedError',
    'EventResponseError',
    'MissingHandlerError',
    'ProtocolError',
    'RenderError',
    'RequestTimeoutError',
    'StarwireError',

    # Client
    'ClientDataSource',
    'ConnectionState',
    'WebSocketTransport',
    'create_ws_data_source',

    # Server
    'ServerDataSource',
    'create_app',
    'mount',
    'serve',

    # Rendering
    'ComponentRegistry',
    'ResolvedComponent',
    'Template',
]
