import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from tortoise import Tortoise
from tortoise.contrib.fastapi import tortoise_exception_handlers

from .core.config import DATABASE_URL, REPORT_CACHE_MAX_AGE_SECONDS, REPORT_CACHE_MAX_ENTRIES
from .core.logging_config import configure_logging
from .features.pivot.cache import ReportCache
from .features.pivot.errors import FetchError, ReportCancelledError
from .features.pivot.router import router as pivot_router

configure_logging()
logger = logging.getLogger("sales_pivot.main")

TORTOISE_ORM_CONFIG = {
    "connections": {
        "default": DATABASE_URL
    },
    "apps": {
        "models": {
            "models": [
                "sales_pivot.features.transactions.models",
                "aerich.models",  # For Aerich migrations
            ],
            "default_connection": "default",
        }
    },
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Connects to the database and creates the report cache on startup.
    """
    logger.info("Starting application...")
    await Tortoise.init(config=TORTOISE_ORM_CONFIG)
    logger.info("Tortoise-ORM has been initialized.")
    app.state.report_cache = ReportCache(
        max_age_seconds=REPORT_CACHE_MAX_AGE_SECONDS, max_entries=REPORT_CACHE_MAX_ENTRIES
    )

    yield

    await Tortoise.close_connections()
    logger.info("Tortoise-ORM connections have been closed.")


async def fetch_error_handler(request: Request, exc: FetchError) -> JSONResponse:
    logger.error(f"Pivot report failed while fetching transactions: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "status": "error",
            "error": "fetch_failed",
            "detail": str(exc),
            "offset": exc.offset,
            "limit": exc.limit,
            "retryable": True,
        },
    )


async def report_cancelled_handler(request: Request, exc: ReportCancelledError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"status": "error", "error": "cancelled", "detail": str(exc), "retryable": True},
    )


app = FastAPI(
    title="Sales Pivot API",
    description="Entity by period sales pivot reports with unit-cost margins.",
    version="0.1.0",
    exception_handlers={
        **tortoise_exception_handlers(),
        FetchError: fetch_error_handler,
        ReportCancelledError: report_cancelled_handler,
    },
    lifespan=lifespan,
)


@app.get("/")
async def read_root(request: Request):
    """
    Root endpoint for the API.
    """
    client_host = request.client.host if request.client else "unknown client"
    logger.info(f"Root endpoint '/' accessed by {client_host}")
    return {"message": "Welcome to the Sales Pivot API!"}


app.include_router(pivot_router, prefix="/api/v1")
