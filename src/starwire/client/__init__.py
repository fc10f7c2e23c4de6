"""
Starwire client: data source, pending requests and transports.
"""

from .data_source import ClientDataSource, ConnectionState, create_ws_data_source
from .requests import PendingRequest, PendingRequests
from .transport import Transport, WebSocketTransport

__all__ = [
    "ClientDataSource",
    "ConnectionState",
    "create_ws_data_source",
    "PendingRequest",
    "PendingRequests",
    "Transport",
    "WebSocketTransport",
]
