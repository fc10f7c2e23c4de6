"""
Starlette Web Adapter

Exposes a ``ServerDataSource`` over a WebSocket route plus two HTTP routes:

    GET  {prefix}/stores/{key}   current value of a store
    POST {prefix}/events         {"event": TemplateEvent} -> {"$": "evt-res", "res": ...}
"""

import asyncio
import logging
from typing import List, Optional, Set

import uvicorn
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route, WebSocketRoute
from starlette.websockets import WebSocket

from ..config import ServerConfig
from ..core.datastate import TemplateEvent, to_json
from .data_source import ServerDataSource

logger = logging.getLogger(__name__)


def create_routes(data_source: ServerDataSource, config: Optional[ServerConfig] = None) -> List[BaseRoute]:
    """Build the WebSocket and HTTP routes serving ``data_source``"""
    config = config or ServerConfig()
    prefix = config.http_prefix.rstrip("/")

    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        connection = data_source.connect()
        writer = asyncio.create_task(connection.run_writer(websocket.send_text))
        # Frames are handled in arrival order; event handlers may finish out of order.
        in_flight: Set[asyncio.Task] = set()
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None and message.get("bytes") is not None:
                    data = message["bytes"].decode("utf-8", errors="replace")
                if data is None:
                    continue
                task = asyncio.create_task(data_source.handle_message(connection, data))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        finally:
            writer.cancel()
            for task in list(in_flight):
                task.cancel()
            data_source.disconnect(connection)

    async def get_store(request: Request):
        key = request.path_params["key"]
        if not data_source.has(key):
            return JSONResponse({"error": f"Unknown store: {key}"}, status_code=404)
        return JSONResponse(to_json(await data_source.get(key)))

    async def post_event(request: Request):
        try:
            body = await request.json()
            event = TemplateEvent.model_validate(body.get("event") if isinstance(body, dict) else None)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Rejected malformed event request: {e}")
            return JSONResponse({"error": "Malformed event request"}, status_code=400)

        res = await data_source.dispatch_event(event)
        return JSONResponse(
            {"$": "evt-res", "res": to_json(res)},
            status_code=200 if res.ok else 500,
        )

    return [
        WebSocketRoute(config.ws_path, websocket_endpoint),
        Route(f"{prefix}/stores/{{key:path}}", get_store, methods=["GET"]),
        Route(f"{prefix}/events", post_event, methods=["POST"]),
    ]


def create_app(
    data_source: ServerDataSource,
    config: Optional[ServerConfig] = None,
    debug: bool = False,
) -> Starlette:
    """Create a Starlette application serving ``data_source``"""
    return Starlette(debug=debug, routes=create_routes(data_source, config))


def mount(app: Starlette, data_source: ServerDataSource, config: Optional[ServerConfig] = None) -> Starlette:
    """Add the starwire routes to an existing Starlette-based application"""
    app.router.routes.extend(create_routes(data_source, config))
    return app


def serve(data_source: ServerDataSource, config: Optional[ServerConfig] = None, debug: bool = False) -> None:
    """Run ``data_source`` on ``config.host:config.port`` with uvicorn"""
    config = config or ServerConfig()
    app = create_app(data_source, config, debug=debug)
    logger.info(f"Serving starwire on ws://{config.host}:{config.port}{config.ws_path}")
    uvicorn.run(app, host=config.host, port=config.port)
