"""Health check endpoints."""

from fastapi import APIRouter, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from starlette import status

from core.database import check_db_connection, comprehensive_health_check
from core.ratelimit import HEALTH_LIMIT, limiter
from core.telemetry import SERVICE_NAME
from schemas import DetailedHealthResponse, HealthResponse, PoolStatusResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness check. Does not touch the database."""
    return HealthResponse(status="healthy", service=SERVICE_NAME)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
@limiter.limit(HEALTH_LIMIT)
async def health_detailed(request: Request) -> DetailedHealthResponse:
    """Database connectivity and connection pool metrics."""
    result = await comprehensive_health_check(request.app.state.engine)

    pool_status = None
    if result["pool"] is not None:
        pool_status = PoolStatusResponse(
            pool_size=result["pool"].pool_size,
            checked_out=result["pool"].checked_out,
            overflow=result["pool"].overflow,
            checked_in=result["pool"].checked_in,
        )

    return DetailedHealthResponse(
        status="healthy" if result["database"] else "unhealthy",
        service=SERVICE_NAME,
        database=result["database"],
        pool=pool_status,
    )


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"description": "Init failed or database unreachable"}},
)
@limiter.limit(HEALTH_LIMIT)
async def ready(request: Request) -> HealthResponse:
    """Readiness check: startup finished and the database answers."""
    init_error = getattr(request.app.state, "init_error", None)
    if init_error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Initialization failed: {init_error}",
        )

    if not getattr(request.app.state, "init_done", False):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Starting",
        )

    try:
        await check_db_connection(request.app.state.engine)
    except (SQLAlchemyError, OSError, TimeoutError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e

    return HealthResponse(status="ready", service=SERVICE_NAME)
