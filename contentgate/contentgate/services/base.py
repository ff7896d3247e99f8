"""Base FastAPI service with common functionality."""
from datetime import datetime
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from contentgate.core.logging import setup_logging, get_logger
from contentgate.core.settings import settings


def create_app(service_name: str) -> FastAPI:
    """Create FastAPI application with common configuration."""
    # Setup logging
    setup_logging(service_name)
    logger = get_logger(__name__)

    app = FastAPI(
        title=f"ContentGate - {service_name.title()}",
        description=f"ContentGate {service_name} service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint."""
        logger.info(f"{service_name} health check passed")
        return JSONResponse(
            status_code=200,
            content={
                "ok": True,
                "status": "healthy",
                "service": service_name,
                "environment": settings.environment,
                "version": "0.1.0",
                "timestamp": str(datetime.utcnow()),
            }
        )

    return app
