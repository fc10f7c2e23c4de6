"""
Configuration Management for Starwire

Dataclass-based configuration for the client data source, the server
adapter, the resolver and logging. Values come from defaults, a dictionary
or ``STARWIRE_*`` environment variables.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

DEFAULT_TIMEOUT_MS = 10_000


@dataclass
class ClientConfig:
    """Client data source configuration"""
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    # Baseline keeps in-flight requests pending across a disconnect until their timeout.
    reject_pending_on_disconnect: bool = False
    reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0


@dataclass
class ServerConfig:
    """Server adapter configuration"""
    host: str = "localhost"
    port: int = 3000
    ws_path: str = "/ws"
    http_prefix: str = ""


@dataclass
class RenderConfig:
    """Resolver configuration"""
    max_depth: int = 64


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None


@dataclass
class StarwireConfig:
    """Complete starwire configuration"""
    client: ClientConfig = field(default_factory=ClientConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    render: RenderConfig = field(default_factory=RenderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'StarwireConfig':
        """Create configuration from a nested dictionary; unknown keys are ignored"""
        config = cls()
        for section in fields(cls):
            values = config_dict.get(section.name)
            if not values:
                continue
            target = getattr(config, section.name)
            for key, value in values.items():
                if hasattr(target, key):
                    setattr(target, key, value)
        return config

    @classmethod
    def from_environment(cls) -> 'StarwireConfig':
        """Create configuration from environment variables"""
        config = cls()

        if os.getenv('STARWIRE_DEFAULT_TIMEOUT_MS'):
            config.client.default_timeout_ms = int(os.getenv('STARWIRE_DEFAULT_TIMEOUT_MS'))

        if os.getenv('STARWIRE_REJECT_PENDING_ON_DISCONNECT'):
            config.client.reject_pending_on_disconnect = os.getenv('STARWIRE_REJECT_PENDING_ON_DISCONNECT').lower() == 'true'

        if os.getenv('STARWIRE_HOST'):
            config.server.host = os.getenv('STARWIRE_HOST')

        if os.getenv('STARWIRE_PORT'):
            config.server.port = int(os.getenv('STARWIRE_PORT'))

        if os.getenv('STARWIRE_WS_PATH'):
            config.server.ws_path = os.getenv('STARWIRE_WS_PATH')

        if os.getenv('STARWIRE_MAX_DEPTH'):
            config.render.max_depth = int(os.getenv('STARWIRE_MAX_DEPTH'))

        if os.getenv('STARWIRE_LOG_LEVEL'):
            config.logging.level = os.getenv('STARWIRE_LOG_LEVEL').upper()

        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "client": {
                "default_timeout_ms": self.client.default_timeout_ms,
                "reject_pending_on_disconnect": self.client.reject_pending_on_disconnect,
                "reconnect_delay": self.client.reconnect_delay,
                "max_reconnect_delay": self.client.max_reconnect_delay,
            },
            "server": {
                "host": self.server.host,
                "port": self.server.port,
                "ws_path": self.server.ws_path,
                "http_prefix": self.server.http_prefix,
            },
            "render": {
                "max_depth": self.render.max_depth,
            },
            "logging": {
                "level": self.logging.level,
                "format": self.logging.format,
                "file_path": self.logging.file_path,
            },
        }


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Attach a handler to the ``starwire`` logger according to ``config``"""
    config = config or LoggingConfig()
    logger = logging.getLogger("starwire")
    logger.setLevel(config.level)

    if config.file_path:
        handler: logging.Handler = logging.FileHandler(config.file_path)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(config.format))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    return logger
