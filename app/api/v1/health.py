from datetime import datetime, timezone

from fastapi import APIRouter

from app.core.config import settings

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    return {
        "ok": True,
        "status": "healthy",
        "service": settings.service_name,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
