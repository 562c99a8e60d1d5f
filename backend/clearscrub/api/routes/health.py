from fastapi import APIRouter

from clearscrub.config import settings
from clearscrub.core.observability import uptime_seconds, utc_now_iso

router = APIRouter(tags=["meta"])


@router.get("/health", summary="Healthcheck")
@router.get("/healthz", include_in_schema=False)
def healthcheck():
    """Liveness check.

    Keep payload stable for monitoring systems.
    """
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "time": utc_now_iso(),
        "uptime_seconds": round(uptime_seconds(), 2),
        "version": settings.build_version,
    }
