"""
Health check endpoint.
"""
from datetime import datetime, timezone
from fastapi import APIRouter

router = APIRouter()

VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """Liveness endpoint for monitoring."""
    return {
        "status": "OK",
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
    }
