import logging

from fastapi import FastAPI

from orgchart.api.departments import router as departments_router
from orgchart.core.config import get_settings
from orgchart.core.connections import check_health, lifespan


def configure_logging() -> None:
    """Configure root logging from settings."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()
    configure_logging()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Organization department hierarchy API",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(departments_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        connections = await check_health()
        return {
            "status": "healthy" if all(connections.values()) else "degraded",
            "connections": connections,
        }

    return app


app = create_app()
