"""
FastAPI application initialization
"""

from typing import Optional
from fastapi import FastAPI
from api.routes import health, sourcing
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.queue import QueueRegistry
from ingestion.scheduler import SourcingScheduler

logger = logging.getLogger(__name__)


def create_app(queues: Optional[QueueRegistry] = None, start_workers: bool = True) -> FastAPI:
    """Build the app; workers and cron triggers start with it unless told otherwise."""
    app = FastAPI(
        title="Opportunity Sourcing API",
        description="Monitoring and manual triggers for the opportunity sourcing pipeline",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(RequestContextMiddleware)

    app.state.queues = queues or QueueRegistry.create()
    app.state.scheduler = SourcingScheduler(app.state.queues)

    app.include_router(health.router)
    app.include_router(sourcing.router)

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        setup_logging()
        logger.info("Starting Opportunity Sourcing API")
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

        if start_workers:
            app.state.queues.start()
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down Opportunity Sourcing API")
        if start_workers:
            app.state.scheduler.stop()
            await app.state.queues.stop()

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Opportunity Sourcing API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "queues": "/queues",
                "enqueue": "/sourcing/jobs/{kind}",
                "fan_out": "/sourcing/fan-out/{kind}"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.API_HOST, port=settings.API_PORT)
