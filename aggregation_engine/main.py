from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from aggregation_engine.core.config import get_settings
from aggregation_engine.core.exceptions import AppException, app_exception_handler
from aggregation_engine.core.logging import setup_logging
from aggregation_engine.interfaces.http.routes import aggregation as aggregation_routes
from aggregation_engine.services.aggregation_service import AggregationService
from aggregation_engine.utils.logger import get_logger

import uvicorn

logger = get_logger(__name__)


def create_application(service: Optional[AggregationService] = None, start_background: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Pre-built aggregation service, mainly for tests
        start_background: Run the scheduler and dispatcher loops during the lifespan
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        setup_logging()
        app.state.aggregation_service = service or AggregationService(settings)
        if start_background:
            await app.state.aggregation_service.start()
        logger.info(f"{settings.app_name} started ({settings.environment})")
        try:
            yield
        finally:
            logger.info("Shutting down...")
            await app.state.aggregation_service.stop()

    app = FastAPI(
        title=settings.app_name,
        description="Scheduled and on-demand aggregation jobs",
        version="1.0.0",
        docs_url=None if settings.is_production else "/docs",
        lifespan=lifespan,
    )
    app.add_exception_handler(AppException, app_exception_handler)
    app.include_router(aggregation_routes.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": settings.app_name}

    return app


app = create_application()


if __name__ == "__main__":
    uvicorn.run("aggregation_engine.main:app", host="0.0.0.0", port=8000, reload=not get_settings().is_production)
