from contextlib import asynccontextmanager
import time

from fastapi import FastAPI, Request
import structlog

from edutrack.core.config import settings
from edutrack.core.logging import configure_logging

# Before the routers and middleware so their loggers render as JSON
configure_logging(settings.debug)

from edutrack.api import events  # noqa: E402
from edutrack.core.database import async_engine  # noqa: E402
from edutrack.middleware.rate_limit import rate_limit_middleware, rate_limiter  # noqa: E402

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    rate_limiter.connect()
    logger.info("collector_started", app_name=settings.app_name, rate_limit_enabled=settings.rate_limit_enabled)
    yield
    await async_engine.dispose()
    logger.info("collector_stopped")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan
)

app.middleware("http")(rate_limit_middleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)

    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round((time.perf_counter() - started) * 1000, 2)
    )
    return response


app.include_router(events.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}
