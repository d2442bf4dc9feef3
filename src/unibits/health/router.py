"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.config import get_settings
from unibits.database import get_session
from unibits.redis_client import get_redis

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe — 200 while the process is up."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_session),  # noqa: B008
) -> dict[str, object]:
    """Readiness probe — database and Redis connectivity."""
    checks: dict[str, str] = {}

    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as exc:
        checks["database"] = f"error: {exc}"

    try:
        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as exc:
        checks["redis"] = f"error: {exc}"

    ready = all(v == "ok" for v in checks.values())
    return {"status": "ready" if ready else "degraded", "checks": checks}


@router.get("/version")
async def version() -> dict[str, str]:
    settings = get_settings()
    return {
        "service": "unibits-api",
        "version": settings.app_version,
        "environment": settings.environment,
    }
