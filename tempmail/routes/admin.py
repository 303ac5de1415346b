"""
Admin statistics endpoint.

GET /api/admin/stats requires "Authorization: Bearer <ADMIN_TOKEN>".
With no admin token configured the endpoint answers 403.
"""
import secrets
import time
from typing import Optional

from fastapi import APIRouter, Header, Request

from tempmail.utils.errors import AdminDisabledError, AuthError
from tempmail.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


def _check_admin_token(expected: str, authorization: Optional[str]) -> None:
    if not expected:
        raise AdminDisabledError()

    scheme, _, provided = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(provided.strip(), expected):
        logger.warning("Rejected admin stats request with bad token")
        raise AuthError("Invalid admin token", "ADMIN_AUTH_FAILED")


@router.get("/admin/stats")
async def admin_stats(request: Request, authorization: Optional[str] = Header(default=None)):
    """
    Session store statistics.

    Returns:
        { success, data: {activeSessions, oldestSessionAgeSeconds,
                          sweeps, evicted, uptimeSeconds} }
    """
    _check_admin_token(request.app.state.settings.admin_token, authorization)

    store = request.app.state.session_store
    sessions = store.sessions()
    now = store.now()
    oldest = max(((now - s.created_at).total_seconds() for s in sessions), default=0.0)

    return {
        "success": True,
        "data": {
            "activeSessions": len(sessions),
            "oldestSessionAgeSeconds": round(oldest, 1),
            "sweeps": store.sweep_count,
            "evicted": store.evicted_count,
            "uptimeSeconds": round(time.monotonic() - request.app.state.started_at, 1),
        },
    }
