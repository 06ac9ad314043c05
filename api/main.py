"""FastAPI application for the habit streaks API."""

import asyncio
import logging
import subprocess
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import fastapi
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from core.config import get_settings
from core.database import (
    create_engine,
    create_session_maker,
    dispose_engine,
    init_db,
)
from core.logger import configure_logging
from core.ratelimit import limiter, rate_limit_exceeded_handler
from core.telemetry import SERVICE_VERSION, RequestTimingMiddleware
from routes import habits_router, health_router, reports_router

configure_logging()
logger = logging.getLogger(__name__)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for unhandled exceptions."""
    logger.exception(
        "unhandled.exception",
        extra={
            "exc_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again."},
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Handler for request validation errors."""
    if not isinstance(exc, RequestValidationError):
        return JSONResponse(status_code=500, content={"detail": "Unexpected error"})

    logger.warning(
        "request.validation_error",
        extra={
            "path": request.url.path,
            "method": request.method,
            "error_count": len(exc.errors()),
        },
    )
    return JSONResponse(
        status_code=422,
        content={"detail": exc.errors()},
    )


async def _run_alembic_migrations() -> None:
    """Run Alembic migrations in a subprocess.

    psycopg2's connection pool cleanup deadlocks inside asyncio.to_thread
    when uvloop is the event loop; a subprocess sidesteps it.
    """
    cmd = [
        sys.executable,
        "-c",
        (
            "from alembic import command; "
            "from alembic.config import Config; "
            "command.upgrade(Config('alembic.ini'), 'head')"
        ),
    ]
    cwd = Path(__file__).parent

    result = await asyncio.to_thread(
        lambda: subprocess.run(
            cmd, cwd=cwd, capture_output=True, text=True, timeout=120
        )
    )

    if result.returncode != 0:
        stderr = result.stderr.strip()
        logger.error("migrations.failed", extra={"stderr": stderr})
        raise RuntimeError(f"Alembic migration failed:\n{stderr}")

    logger.info("migrations.complete")


@asynccontextmanager
async def lifespan(app: fastapi.FastAPI):
    """Create DB engine at startup, dispose on shutdown."""
    app.state.engine = create_engine()
    app.state.session_maker = create_session_maker(app.state.engine)

    app.state.init_done = False
    app.state.init_error = None

    try:
        async with asyncio.timeout(60):
            await init_db(app.state.engine)

        if get_settings().run_migrations_on_startup:
            async with asyncio.timeout(120):
                await _run_alembic_migrations()

        app.state.init_done = True
        logger.info("init.complete")
    except TimeoutError:
        logger.error(
            "init.timeout",
            extra={"hint": "Startup hung, check DB connectivity and migration state"},
        )
        raise RuntimeError("Application startup timed out")
    except Exception as e:
        app.state.init_error = str(e)
        logger.error("init.failed", extra={"error": str(e)}, exc_info=True)
        raise

    try:
        yield
    finally:
        await dispose_engine(app.state.engine)


def create_app() -> fastapi.FastAPI:
    settings = get_settings()
    docs_enabled = settings.enable_docs or settings.debug

    application = fastapi.FastAPI(
        title="Habit Streaks API",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    application.add_exception_handler(
        RequestValidationError, validation_exception_handler
    )
    application.add_exception_handler(Exception, global_exception_handler)

    application.add_middleware(GZipMiddleware, minimum_size=500)
    # Outermost, so the request log line covers every other middleware
    application.add_middleware(RequestTimingMiddleware)

    application.include_router(health_router)
    application.include_router(habits_router)
    application.include_router(reports_router)
    return application


app = create_app()
