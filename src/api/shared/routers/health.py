"""
Health Check Endpoints

Liveness and readiness for container orchestration. Readiness reports
database reachability and the outbox backlog.
"""

from datetime import datetime, timezone
from typing import Dict, Any
import os

from fastapi import APIRouter, Request, Response

from ....core.outbox.repository import OutboxRepository

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request, response: Response) -> Dict[str, Any]:
    """
    Health check.

    Returns 200 when the database answers, 503 otherwise.
    """
    db = request.app.state.db
    checks: Dict[str, Any] = {}
    healthy = True

    try:
        async with db.transaction() as tx:
            checks["outbox_pending"] = await OutboxRepository().pending_count(tx)
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)[:100]}"
        healthy = False

    publisher = getattr(request.app.state, "publisher", None)
    checks["outbox_publisher"] = "running" if publisher and publisher.running else "not running"

    if not healthy:
        response.status_code = 503

    return {
        "status": "healthy" if healthy else "unhealthy",
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": os.getenv("APP_VERSION", "1.0.0")
    }


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 if the process is alive."""
    return {"status": "alive"}
