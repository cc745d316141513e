"""
Zone News WebSocket Gateway main application.

Pushes real-time news, reaction and notification events to authenticated
clients. Events arrive from the Redis bus (one subscriber task per channel)
or from internal services through the control API.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.config.settings import settings
from shared.config.logging import setup_logging, gateway_logger as logger
from shared.infrastructure.correlation import CorrelationIdMiddleware
from shared.infrastructure.db import dispose_engine
from shared.infrastructure.redis_pool import check_redis_health, close_redis_pool
from shared.utils.exceptions import ForbiddenError
from news_gateway import __version__
from news_gateway.connection_manager import ConnectionManager
from news_gateway.redis_subscriber import get_subscriber_metrics, run_channel_subscriber
from news_gateway.components.auth.gate import AuthenticationGate
from news_gateway.components.bridge.bridge import BusBridge
from news_gateway.components.connection.heartbeat import HeartbeatMonitor
from news_gateway.components.control.routes import router as control_router
from news_gateway.components.data.articles import ArticleRepository
from news_gateway.components.data.preferences import PreferenceRepository
from news_gateway.components.endpoints.client import ClientEndpoint
from news_gateway.components.events.router import ClientEventRouter


# Process-wide collaborators. Exposed on app.state so tests can swap them
# before the application starts.
manager = ConnectionManager()
auth_gate = AuthenticationGate()
preferences = PreferenceRepository()
articles = ArticleRepository()
client_router = ClientEventRouter(manager, articles, snapshot_limit=settings.ws_snapshot_limit)
bus_bridge = BusBridge(manager)


# =============================================================================
# Lifespan and background tasks
# =============================================================================


async def start_bus_subscriber(channel: str, bridge: BusBridge) -> None:
    """Run one channel subscriber; a subscriber that gives up is logged, not fatal."""
    try:
        await run_channel_subscriber(channel, bridge.handle_message)
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("Bus subscriber stopped", channel=channel, error=str(e), exc_info=True)


async def _cancel_tasks(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts:
    - Heartbeat monitor for unresponsive sessions
    - One Redis subscriber task per bus channel (when the bus is enabled)
    """
    setup_logging()
    logger.info(
        "Starting Zone News WebSocket Gateway",
        port=settings.ws_gateway_port,
        path=settings.ws_path,
        env=settings.environment,
    )
    for problem in settings.validate_production_secrets():
        logger.warning("Configuration problem", problem=problem)

    state = app.state
    monitor = HeartbeatMonitor(
        state.manager,
        interval=settings.ws_heartbeat_interval,
        endpoint=settings.ws_path,
    )
    state.heartbeat = monitor

    tasks = [asyncio.create_task(monitor.run(), name="heartbeat_monitor")]
    if settings.bus_enabled:
        for channel in state.bus_bridge.channels:
            tasks.append(
                asyncio.create_task(
                    start_bus_subscriber(channel, state.bus_bridge),
                    name=f"bus_subscriber:{channel}",
                )
            )
    else:
        logger.info("Bus disabled, only the control API can inject events")

    yield

    logger.info("Shutting down Zone News WebSocket Gateway")
    closed = await state.manager.shutdown()
    await _cancel_tasks(tasks)

    try:
        state.preferences.clear_cache()
    except Exception as e:
        logger.warning("Error clearing preference cache", error=str(e))

    await close_redis_pool()
    dispose_engine()
    logger.info("Gateway stopped", sessions_closed=closed)


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Zone News WebSocket Gateway",
    description="Real-time news delivery over WebSocket",
    version=__version__,
    lifespan=lifespan,
)

app.state.manager = manager
app.state.auth_gate = auth_gate
app.state.preferences = preferences
app.state.articles = articles
app.state.client_router = client_router
app.state.bus_bridge = bus_bridge
app.state.heartbeat = None

ws_allowed_origins = (
    [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.allowed_origins
    else ["*"]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ws_allowed_origins,
    allow_credentials=ws_allowed_origins != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Internal-Token", "X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware)


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError) -> JSONResponse:
    # Same body for every rejection reason
    return JSONResponse(status_code=exc.status_code, content=dict(ForbiddenError.BODY))


app.include_router(control_router)


# =============================================================================
# Health Check
# =============================================================================


@app.get("/health")
def health_check(request: Request):
    """Basic health check endpoint."""
    return {"status": "healthy", **request.app.state.manager.get_health()}


@app.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with Redis, subscriber and registry status."""
    state = request.app.state
    monitor: HeartbeatMonitor | None = state.heartbeat

    checks = {
        "service": settings.server_name,
        "version": app.version,
        "environment": settings.environment,
        "gateway": state.manager.get_detailed_stats(),
        "heartbeat": monitor.get_stats() if monitor else None,
        "preferences": state.preferences.get_stats(),
        "subscribers": get_subscriber_metrics(),
        "dependencies": {},
    }
    all_healthy = True

    if settings.bus_enabled:
        redis_health = await check_redis_health()
        checks["dependencies"]["redis"] = redis_health
        if redis_health["status"] != "healthy":
            all_healthy = False

        failed = sorted(
            channel
            for channel, status in checks["subscribers"].items()
            if status["state"] == "failed"
        )
        if failed:
            checks["failed_channels"] = failed
            all_healthy = False
    else:
        checks["dependencies"]["redis"] = {"status": "disabled"}

    problems = await state.manager.registry.check_consistency()
    checks["registry_consistent"] = not problems
    if problems:
        logger.error("Registry inconsistency detected", problems=problems[:10])
        all_healthy = False

    checks["status"] = "healthy" if all_healthy else "degraded"
    if not all_healthy:
        return JSONResponse(content=checks, status_code=503)
    return checks


# =============================================================================
# WebSocket Endpoint
# =============================================================================


@app.websocket(settings.ws_path)
async def client_websocket(websocket: WebSocket):
    """
    WebSocket endpoint for news clients.

    Credential: ``?token=``, ``Authorization: Bearer`` or the ``token`` cookie.
    """
    state = websocket.app.state
    endpoint = ClientEndpoint(
        websocket,
        state.manager,
        state.auth_gate,
        state.client_router,
        state.preferences,
        endpoint_name=settings.ws_path,
    )
    await endpoint.run()


# =============================================================================
# Entry point
# =============================================================================


def run() -> None:
    import uvicorn

    uvicorn.run(
        "news_gateway.main:app",
        host=settings.ws_gateway_host,
        port=settings.ws_gateway_port,
        reload=settings.debug and settings.environment == "development",
    )


if __name__ == "__main__":
    run()
