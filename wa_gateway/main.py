"""
WA Gateway main application.

Serves the dashboard WebSocket hub on "/" and "/ws", plus plain HTTP
health and metrics endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.config.logging import gateway_logger as logger, setup_logging
from shared.config.settings import Settings, settings as default_settings
from shared.utils.exceptions import StartupError
from wa_gateway.components.core.constants import HEALTHZ_BODY, ROOT_BANNER
from wa_gateway.components.endpoints.handlers import HubEndpoint
from wa_gateway.components.metrics.prometheus import generate_prometheus_metrics
from wa_gateway.connection_manager import ConnectionManager


# =============================================================================
# Lifespan
# =============================================================================


def ensure_data_dir(path: str) -> Path:
    """
    Create the transport session directory.

    Raises:
        StartupError: The directory cannot be created.
    """
    data_dir = Path(path)
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StartupError(f"Cannot create data directory {data_dir}: {e}", path=str(data_dir))
    return data_dir


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Starts:
    - Transport session policy (fresh login, auto reconnect)
    - Scheduled dispatch loop (when ENABLE_SCHEDULING is on)

    The transport itself connects when the first client arrives.
    """
    manager: ConnectionManager = app.state.manager
    cfg = manager.settings

    setup_logging()
    logger.info(
        "Starting WA Gateway",
        port=cfg.port,
        env=cfg.environment,
        scheduling=cfg.enable_scheduling,
    )
    for problem in cfg.validate_runtime():
        logger.warning("Configuration problem", problem=problem)

    ensure_data_dir(cfg.whatsapp_data_dir)
    await manager.start()

    yield

    logger.info("Shutting down WA Gateway")
    await manager.shutdown()


# =============================================================================
# FastAPI Application
# =============================================================================


def create_app(
    manager: ConnectionManager | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the application around a connection manager.

    Tests pass their own manager (usually with an InMemoryTransport).
    """
    cfg = settings or (manager.settings if manager is not None else default_settings)
    if manager is None:
        manager = ConnectionManager(settings=cfg)

    app = FastAPI(
        title="WA Gateway",
        description="WebSocket hub for WhatsApp broadcast dashboards",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.manager = manager

    allowed_origins = [o.strip() for o in cfg.allowed_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # =========================================================================
    # Plain HTTP
    # =========================================================================

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return ROOT_BANNER

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        """Liveness probe with a fixed body."""
        return HEALTHZ_BODY

    @app.get("/health")
    async def health_check(request: Request):
        """Health check with connection and transport state."""
        stats = await request.app.state.manager.get_stats()
        return {
            "status": "healthy",
            "service": "wa-gateway",
            "version": app.version,
            "environment": cfg.environment,
            **stats,
        }

    @app.get("/metrics")
    async def prometheus_metrics(request: Request):
        """
        Prometheus-compatible metrics endpoint.

        Configure Prometheus scrape:
            scrape_configs:
              - job_name: 'wa-gateway'
                static_configs:
                  - targets: ['localhost:3000']
                metrics_path: '/metrics'
        """
        metrics_output = await generate_prometheus_metrics(request.app.state.manager)
        return PlainTextResponse(
            content=metrics_output,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    # =========================================================================
    # WebSocket Endpoints
    # =========================================================================

    @app.websocket("/")
    async def root_websocket(websocket: WebSocket):
        await HubEndpoint(websocket, websocket.app.state.manager, "/").run()

    @app.websocket("/ws")
    async def hub_websocket(websocket: WebSocket):
        """WebSocket endpoint for dashboard clients."""
        await HubEndpoint(websocket, websocket.app.state.manager, "/ws").run()

    return app


app = create_app()


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "wa_gateway.main:app",
        host="0.0.0.0",
        port=default_settings.port,
        reload=default_settings.debug,
    )
