"""FastAPI application for the concert feed service.

Run with:
    uvicorn concertfeed.api.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from concertfeed.api.routes import concerts, scheduler, sync
from concertfeed.config import get_settings
from concertfeed.core.exceptions import ConfigurationError
from concertfeed.logging import get_logger, setup_logging
from concertfeed.scheduler import init_scheduler, shutdown_scheduler

logger = get_logger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Invalid configuration fails here, before any sync is scheduled
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)

    init_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="Concert Feed API",
    description="Ingests provider event feeds and finds concerts near you",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("configuration_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"detail": str(exc), **exc.details})


app.include_router(sync.router, prefix="/sync", tags=["Sync"])
app.include_router(scheduler.router, prefix="/scheduler", tags=["Scheduler"])
app.include_router(concerts.router, prefix="/concerts", tags=["Concerts"])


@app.get("/", tags=["Health"])
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "Concert Feed API",
        "version": VERSION,
    }


@app.get("/health", tags=["Health"])
async def health():
    """Detailed health check."""
    from concertfeed.core.catalog_store import get_catalog_store
    from concertfeed.scheduler import get_next_run

    try:
        store = get_catalog_store()
        result = store.client.table("events").select("id", count="exact").limit(1).execute()
        db_status = "connected"
        event_count = result.count
    except Exception as e:
        db_status = f"error: {str(e)}"
        event_count = 0

    return {
        "status": "ok",
        "database": db_status,
        "events_in_db": event_count,
        "next_sync": get_next_run(),
    }
