# FILE: web/api.py
# PURPOSE: Thin FastAPI layer over the store's snapshot operations, plus the
#          WebSocket push of live data.

import json
import time
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info("WebSocket client connected")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        for connection in self.active_connections[:]:
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.info(f"WebSocket write error: {e}")
                self.disconnect(connection)


def envelope(data: Any = None, error: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            'status': 'error' if error else 'success',
            'data': data,
            'error': error,
            'timestamp': time.time(),
        },
    )


async def broadcast_data(app: FastAPI):
    """Pushes the live aggregate to every client each broadcast interval."""
    manager: ConnectionManager = app.state.manager
    while True:
        if manager.active_connections:
            payload = await asyncio.to_thread(app.state.store.live_data)
            await manager.broadcast(json.dumps(payload))
        await asyncio.sleep(app.state.broadcast_interval)


def create_app(store, broadcast_interval: float = 2.0) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(broadcast_data(app))
        yield
        task.cancel()

    app = FastAPI(lifespan=lifespan)
    app.state.store = store
    app.state.manager = ConnectionManager()
    app.state.broadcast_interval = broadcast_interval

    @app.get("/api/traffic")
    def get_traffic():
        interfaces = store.snapshot_interfaces()
        return envelope({'interfaces': {name: iface.to_dict() for name, iface in interfaces.items()}})

    @app.get("/api/traffic/{interface}")
    def get_interface_traffic(interface: str):
        iface = store.snapshot_interfaces().get(interface)
        if iface is None:
            return envelope(error="Interface not found", status_code=404)
        return envelope(iface.to_dict())

    @app.get("/api/devices")
    def get_devices():
        devices = [d.to_dict() for d in store.snapshot_devices().values()]
        return envelope({'devices': devices, 'total': len(devices)})

    @app.get("/api/devices/active")
    def get_active_devices():
        devices = [d.to_dict() for d in store.snapshot_devices().values() if d.is_active]
        return envelope({'devices': devices, 'total': len(devices)})

    @app.get("/api/ping")
    def get_all_pings():
        pings = store.snapshot_pings()
        return envelope({'pings': {host: p.to_dict() for host, p in pings.items()}})

    @app.get("/api/ping/{host}")
    def get_ping(host: str):
        ping = store.snapshot_pings().get(host)
        if ping is None:
            return envelope(error="Host not found", status_code=404)
        return envelope(ping.to_dict())

    @app.get("/api/live")
    def get_live():
        return envelope(store.live_data())

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        manager: ConnectionManager = app.state.manager
        await manager.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            manager.disconnect(websocket)

    return app
