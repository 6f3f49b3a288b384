"""
FastAPI Application Entry Point

This module initializes the Rejimde BFF application and integrates:
- Cookie based route gating
- Calendar, expert, review and progress API routes
- Backend connectivity checks
- Lifecycle events
"""

import logging
import sys
from contextlib import asynccontextmanager

import requests
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rejimde.config import settings
from rejimde.services.api import ApiClient
from rejimde.services.progress import InFlightGuard
from rejimde.web import RouteGateMiddleware, api_router, get_http_session

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"

# Log startup information
logger.info("=" * 60)
logger.info("Rejimde BFF")
logger.info("=" * 60)
logger.info(f"Python version: {sys.version}")
logger.info(f"Debug mode: {settings.debug}")
logger.info(f"Log level: {settings.log_level}")
logger.info(f"Backend URL: {settings.wp_api_url}")
logger.info(f"Calendar grid: {settings.calendar_start_hour}:00-{settings.calendar_end_hour}:00")
logger.info("=" * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Handles startup and shutdown events:
    - Opens the shared HTTP session for backend calls
    - Checks backend reachability
    - Closes the HTTP session on shutdown
    """
    # Startup
    logger.info("🚀 Starting application...")

    app.state.http_session = requests.Session()
    app.state.progress_guard = InFlightGuard()

    logger.info("Checking backend connection...")
    backend_up = await ApiClient(http=app.state.http_session).ping()
    if backend_up:
        logger.info("✅ Backend connection verified")
    else:
        logger.error("❌ Backend is not reachable!")
        logger.warning("Application will start but backend calls will fail")

    logger.info("✅ Application startup complete")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("=" * 60)
    logger.info("🛑 Shutting down application...")

    app.state.http_session.close()
    logger.info("✅ HTTP session closed")

    logger.info("✅ Application shutdown complete")
    logger.info("=" * 60)


# Initialize FastAPI application
app = FastAPI(
    title="Rejimde BFF",
    description=(
        "Backend-for-frontend of the Rejimde health platform. "
        "Gates site pages by session cookies and serves calendar, "
        "expert review and progress data from the Rejimde API."
    ),
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RouteGateMiddleware)


@app.get("/")
async def root():
    """
    Root endpoint.

    Returns basic API information.
    """
    return {
        "message": "Rejimde BFF API",
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "health": "/health",
            "docs": "/docs" if settings.debug else "disabled in production",
            "calendar": "/api/calendar/week",
            "experts": "/api/experts/{slug}",
            "progress": "/api/progress/{content_type}/{content_id}/toggle",
        }
    }


@app.get("/health")
async def health_check(http: requests.Session = Depends(get_http_session)):
    """
    Application health check endpoint.

    Checks:
    - API responsiveness
    - Backend reachability

    Returns:
        JSONResponse with health status
    """
    backend_up = await ApiClient(http=http).ping()

    return JSONResponse(
        status_code=200 if backend_up else 503,
        content={
            "status": "healthy" if backend_up else "degraded",
            "api": "operational",
            "backend": "connected" if backend_up else "disconnected",
            "version": VERSION,
        },
    )


@app.get("/info")
async def app_info():
    """
    Application information endpoint.

    Returns configuration and status information.
    """
    return {
        "name": "Rejimde BFF",
        "version": VERSION,
        "environment": "development" if settings.debug else "production",
        "backend": settings.wp_api_url,
        "features": {
            "route_gating": True,
            "calendar_layout": True,
            "expert_reviews": True,
            "progress_tracking": True,
        },
        "calendar": {
            "start_hour": settings.calendar_start_hour,
            "end_hour": settings.calendar_end_hour,
            "hour_height": settings.calendar_hour_height,
        },
    }


# Include BFF API router
app.include_router(api_router)

logger.info("✅ FastAPI application initialized")
logger.info("📡 API router mounted at: /api")

# If running with uvicorn directly (not through import)
if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("Starting uvicorn server...")
    logger.info(f"Host: {settings.app_host}")
    logger.info(f"Port: {settings.app_port}")
    logger.info("=" * 60)

    uvicorn.run(
        "rejimde.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
