import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.archive import router as archive_router
from .api.events import router as events_router
from .api.health import router as health_router
from .api.jobs import router as jobs_router
from .api.prometheus import router as prometheus_router
from .api.stats import router as stats_router
from .api.timers import router as timers_router
from .api.users import router as users_router
from .api.version import router as version_router
from .config import API_PREFIX, API_VERSION, APP_HOST, APP_PORT, DATABASE_URL
from .db_init import init_schema_and_seed
from .errors import ShopfloorError
from .logging_config import setup_logging
from .middleware import TracingMiddleware

# Configure logging at import time
setup_logging()

logger = logging.getLogger("shopfloor")


@asynccontextmanager
async def lifespan(application: FastAPI):
    logger.info("Shopfloor API starting up", extra={"version": API_VERSION, "component": "api"})

    # Ensure DB schema + seed default users (idempotent)
    init_schema_and_seed()

    logger.info("Shopfloor API ready", extra={
        "database": DATABASE_URL.split("@")[-1],
        "component": "api",
    })
    try:
        yield
    finally:
        logger.info("Shopfloor API shutting down", extra={"component": "api"})


app = FastAPI(title="Shopfloor Job & Time Tracking API", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add tracing middleware
app.add_middleware(TracingMiddleware)


@app.exception_handler(ShopfloorError)
async def shopfloor_error_handler(request: Request, exc: ShopfloorError):
    logger.info("request rejected", extra={
        "path": request.url.path,
        "status": exc.status_code,
        "error": exc.kind,
        "detail": exc.detail,
        "user_id": getattr(request.state, "user_id", None),
    })
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(health_router, prefix=API_PREFIX)
app.include_router(version_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(timers_router, prefix=API_PREFIX)
app.include_router(archive_router, prefix=API_PREFIX)
app.include_router(stats_router, prefix=API_PREFIX)
app.include_router(events_router, prefix=API_PREFIX)
app.include_router(prometheus_router, prefix=API_PREFIX)


def run():
    import uvicorn

    logger.info(f"Starting Shopfloor API on {APP_HOST}:{APP_PORT}")
    uvicorn.run(
        "shopfloor.main:app",
        host=APP_HOST,
        port=APP_PORT,
        reload=False,
        access_log=True
    )


# Server startup configuration
if __name__ == "__main__":
    run()
