"""
Group Call Backend - Main Application

This is the entry point for the FastAPI application.
It handles:
- REST API endpoints for room group calls
- WebSocket connections for call events
- The Redis relay that fans events out across API processes
"""
from contextlib import asynccontextmanager
import asyncio
import logging
from datetime import datetime, UTC

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from groupcall.api import router as api_router
from groupcall.api.websocket import router as ws_router
from groupcall.config.settings import settings
from groupcall.config.redis import close_redis
from groupcall.models.database import init_db
from groupcall.services.connection import CallEventRelay, connection_manager
from groupcall.services.core import SqlRoomDirectory, SqlSessionStore
from groupcall.services.group_call import GroupCallLifecycleManager, TimerRegistry

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # === STARTUP ===
    logger.info("🚀 Starting Group Call Backend...")

    await init_db()
    logger.info("✅ Database tables created")

    timers = TimerRegistry()
    rooms = SqlRoomDirectory()
    app.state.timers = timers
    app.state.rooms = rooms
    app.state.lifecycle = GroupCallLifecycleManager(
        store=SqlSessionStore(),
        rooms=rooms,
        dispatcher=connection_manager,
        timers=timers,
    )

    relay_task = None
    if settings.EVENT_RELAY_ENABLED:
        relay = CallEventRelay(connection_manager)
        connection_manager.attach_relay(relay)
        relay_task = asyncio.create_task(relay.run())
        logger.info(f"✅ Event relay started (instance {relay.instance_id})")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("🛑 Shutting down...")
    await timers.shutdown()
    await app.state.lifecycle.drain_notifications()
    if relay_task is not None:
        connection_manager.attach_relay(None)
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass
    await close_redis()


app = FastAPI(
    title="Group Call Backend",
    description="Room group call sessions with invitations and abandonment handling",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST API routes
app.include_router(api_router, prefix="/api")

# Include WebSocket routes
app.include_router(ws_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Group Call Backend",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    timers = getattr(app.state, "timers", None)
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "channels": connection_manager.get_channel_count(),
        "total_connections": connection_manager.get_total_connections(),
        "pending_timers": timers.active_count if timers is not None else 0,
    }
