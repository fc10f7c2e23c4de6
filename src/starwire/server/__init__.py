"""
Starwire server: authoritative data source and Starlette adapter.
"""

from .data_source import Connection, ServerDataSource
from .app import create_app, create_routes, mount, serve

__all__ = [
    "Connection",
    "ServerDataSource",
    "create_app",
    "create_routes",
    "mount",
    "serve",
]
