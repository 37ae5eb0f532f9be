# cardrecon/routers/health.py

from fastapi import APIRouter, Depends

from cardrecon.dependencies import get_store
from cardrecon.store import RecordStore

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {
        "status": "healthy",
        "service": "cardrecon-api",
    }


@router.get("/ready")
async def readiness_check(store: RecordStore = Depends(get_store)):
    """Readiness check - reports which record store is serving requests."""
    return {
        "status": "ready",
        "checks": {
            "store": type(store).__name__,
        }
    }
