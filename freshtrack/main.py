"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from freshtrack.config import settings
from freshtrack.domain.models import AlertScope
from freshtrack.infrastructure.backend_client import BackendClient
from freshtrack.infrastructure.change_feed import LocalChangeFeed
from freshtrack.infrastructure.signals import SignalBus
from freshtrack.middleware.error_handler import ErrorHandlerMiddleware
from freshtrack.services.application.alert_aggregator import (
    AlertAggregator,
    AlertCountMonitor,
    default_alert_sources,
)
from freshtrack.services.application.inventory_view import InventoryView
from freshtrack.api.v1.routers import alerts, batches, inventory, risk

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rate limiter
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Builds the long-lived collaborators on startup and releases them, in
    reverse order, on shutdown.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Backend: {settings.backend_base_url}, "
                f"default warehouse: {settings.default_warehouse_id or 'all'}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    backend_client = BackendClient()
    change_feed = LocalChangeFeed()
    signal_bus = SignalBus()
    inventory_view = InventoryView(backend_client, change_feed)
    alert_monitor = AlertCountMonitor(
        AlertAggregator(default_alert_sources(backend_client)),
        AlertScope(warehouse_id=settings.default_warehouse_id),
        signals=signal_bus,
    )

    app.state.backend_client = backend_client
    app.state.change_feed = change_feed
    app.state.signal_bus = signal_bus
    app.state.inventory_view = inventory_view
    app.state.alert_monitor = alert_monitor

    alert_monitor.start()

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await alert_monitor.stop()
    inventory_view.close()
    change_feed.close()
    await backend_client.close()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Perishable Inventory Core API

    This API exposes spoilage-risk scoring, a live warehouse inventory view
    and unacknowledged alert counts for stored produce batches.

    ## Features

    - **Risk Scoring**: Deterministic 0-100 score from temperature, humidity,
      shelf-life, gas and storage-duration factors, with fresh/moderate/high
      classification
    - **Live Inventory**: Non-expired batches per warehouse, kept in sync
      with every write through a change feed
    - **Alert Counts**: Sensor and order alerts summed per warehouse and
      role, tolerant of partial source failures
    - **Allocation Ranking**: Ranks current batches for a demand request,
      riskiest first
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(risk.router, prefix="/api/v1")
app.include_router(inventory.router, prefix="/api/v1")
app.include_router(alerts.router, prefix="/api/v1")
app.include_router(batches.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
    }
