from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import json
import logging
from typing import Dict, Any
from datetime import datetime, timezone

from app.api import analytics, emergency, geofence, location, tourists
from app.config import settings
from app.core.emergency_alert import EmergencyDispatchService
from app.core.monitor import SafetyMonitor
from app.utils.notifications import AlertFeedService, NotificationManager

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# WebSocket connection manager
class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket, session_id: str):
        await websocket.accept()
        self.active_connections[session_id] = websocket
        logger.info(f"WebSocket connected: {session_id}")

    def disconnect(self, session_id: str):
        if session_id in self.active_connections:
            del self.active_connections[session_id]
            logger.info(f"WebSocket disconnected: {session_id}")

    async def broadcast(self, data: dict[str, Any]):
        disconnected = []
        for session_id, websocket in list(self.active_connections.items()):
            try:
                await websocket.send_text(json.dumps(data, default=str))
            except Exception as e:
                logger.warning(f"Error broadcasting to {session_id}: {e}")
                disconnected.append(session_id)

        # Clean up disconnected clients
        for session_id in disconnected:
            self.disconnect(session_id)

manager = ConnectionManager()

# Lifespan manager for startup/shutdown events
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    app.state.monitor = SafetyMonitor(settings)
    app.state.dispatcher = EmergencyDispatchService(
        NotificationManager(alert_feed=AlertFeedService(manager.broadcast))
    )
    if app.state.monitor.context.scorer is None:
        logger.warning("Distress model not loaded; learned_pattern detector will be skipped")
    logger.info("Application starting up")
    yield
    # Shutdown
    logger.info("Application shutting down")

app = FastAPI(
    title="Tourist Safety Monitoring API",
    description="Geofencing, crowd density and anomaly detection for tourist safety",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tourists.router, prefix="/api/tourists", tags=["Tourists"])
app.include_router(location.router, prefix="/api/location", tags=["Location"])
app.include_router(geofence.router, prefix="/api/geofence", tags=["Geofence"])
app.include_router(analytics.router, prefix="/api/analytics", tags=["Analytics"])
app.include_router(emergency.router, prefix="/api/emergency", tags=["Emergency"])

@app.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    await manager.connect(websocket, session_id)
    try:
        while True:
            try:
                await asyncio.wait_for(websocket.receive_text(), timeout=settings.WEBSOCKET_PING_INTERVAL)
            except asyncio.TimeoutError:
                # Quiet client: ping and expect any reply within the timeout
                await websocket.send_text(json.dumps({"type": "ping"}))
                await asyncio.wait_for(websocket.receive_text(), timeout=settings.WEBSOCKET_PING_TIMEOUT)
            # Echo back for heartbeat
            await websocket.send_text(json.dumps({
                "type": "heartbeat",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }))
    except asyncio.TimeoutError:
        logger.info(f"WebSocket ping timeout: {session_id}")
        manager.disconnect(session_id)
        await websocket.close()
    except WebSocketDisconnect:
        manager.disconnect(session_id)

@app.get("/")
async def root():
    return {
        "message": "Tourist Safety Monitoring API",
        "status": "active",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

# Health check endpoint
@app.get("/health")
async def health_check() -> dict[str, Any]:
    monitor: SafetyMonitor = app.state.monitor
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "active_connections": len(manager.active_connections),
        "tourists": len(monitor.registry),
        "zones": len(monitor.geofence.zones),
        "learned_model": monitor.context.scorer is not None
    }

# Make manager available to other modules
app.state.websocket_manager = manager
