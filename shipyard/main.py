"""Shipyard - FastAPI application for deploying projects to a hosting provider."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shipyard.config import get_settings
from shipyard.database import close_db, init_db
from shipyard.errors import OrchestrationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Configure logging level
    logging.getLogger().setLevel(settings.log_level.upper())

    # Initialize MongoDB
    await init_db()

    from shipyard.providers.vercel import VercelProvider
    from shipyard.services.notification import NotificationService
    from shipyard.services.orchestrator import Orchestrator
    from shipyard.services.store import DeploymentStore

    provider = VercelProvider()
    if not provider.enabled:
        logger.warning("VERCEL_TOKEN is not set, every deployment attempt will fail")

    orchestrator = Orchestrator(
        store=DeploymentStore(),
        provider=provider,
        notifier=NotificationService.from_settings(settings),
    )
    app.state.orchestrator = orchestrator

    # Start stale attempt scheduler
    from shipyard.services.reaper import start_scheduler, stop_scheduler

    start_scheduler(orchestrator)

    logger.info("Shipyard started")

    yield

    # Cleanup on shutdown: in-flight attempts are not cancelled
    stop_scheduler()
    await orchestrator.drain()
    await close_db()
    logger.info("Shipyard stopped")


# Create FastAPI app
app = FastAPI(
    title="Shipyard",
    description="Deployment control plane for git and uploaded projects",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Include routers
from shipyard.api.projects import router as projects_router  # noqa: E402

app.include_router(projects_router)


@app.exception_handler(OrchestrationError)
async def orchestration_exception_handler(request: Request, exc: OrchestrationError):
    """Render rejected and failed orchestration operations as JSON."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
    )


# Health check endpoint
@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Run the application using uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "shipyard.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run()
