"""
TopoTable - FastAPI Application Factory
"""
from datetime import datetime, timezone
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from core.config import Settings
from core.engine.datasource import Datasource
from core.engine.errors import ConfigurationError, ExtractionTimeout
from core.engine.logger import get_logger
from core.api.routes import health, query

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the datasource from settings unless one was injected, then connect the fetcher"""
    config: Settings = app.state.config

    try:
        if app.state.datasource is None:
            app.state.datasource = Datasource.from_config(config.datasource, config.engine)
        await app.state.datasource.fetcher.connect()
        logger.info("Datasource ready", base_url=app.state.datasource.fetcher.base_url)
    except Exception as e:
        logger.critical(f"Critical failure during application startup: {e}", exc_info=True)
        raise

    yield

    try:
        await app.state.datasource.close()
        logger.info("Datasource closed")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning(f"Rejected query: {exc}", path=request.url.path, field=exc.field)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "field": exc.field},
    )


async def extraction_timeout_handler(request: Request, exc: ExtractionTimeout):
    logger.error(str(exc), path=request.url.path, rows_done=exc.rows_done, rows_total=exc.rows_total)
    return JSONResponse(status_code=status.HTTP_504_GATEWAY_TIMEOUT, content={"detail": str(exc)})


def create_app(config: Settings, datasource: Optional[Datasource] = None) -> FastAPI:
    """Create the API around one datasource (injected in tests, else built at startup)"""

    app = FastAPI(
        title=config.app.name,
        version=config.app.version,
        description=config.app.description,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        redirect_slashes=False
    )

    app.state.config = config
    app.state.start_time = datetime.now(timezone.utc)
    app.state.datasource = datasource

    # Engine errors escaping a route map to HTTP statuses here
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(ExtractionTimeout, extraction_timeout_handler)

    app.include_router(health.router)
    app.include_router(query.router)

    return app
