"""FastAPI application factory for the PrintWatch API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from printwatch.api.routes import create_routes
from printwatch.api.websocket import WebSocketManager

if TYPE_CHECKING:
    from printwatch.main import PrintWatchService

logger = logging.getLogger(__name__)


def create_app(service: PrintWatchService) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="PrintWatch API",
        description="SNMP printer fleet monitoring and alerting API",
        version="0.1.0",
    )

    # CORS: allow all origins for local use
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    ws_manager = WebSocketManager(service.event_bus)

    @app.on_event("startup")
    async def _startup() -> None:
        await ws_manager.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await ws_manager.stop()

    app.include_router(create_routes(service))

    @app.websocket("/ws/events")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep connection alive; handle pings from client
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            ws_manager.disconnect(websocket)

    return app
