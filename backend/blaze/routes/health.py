"""
Blaze Backend — Health Check Route
===================================

What:  Health check endpoint for monitoring and load balancer checks.
How:   Pings the database and reports web push configuration plus the
       number of confirmations currently waiting for an answer.

Status levels:
    - healthy:   database reachable and VAPID keys configured
    - degraded:  database reachable but push cannot be delivered
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from blaze import __version__
from blaze.database import ping_database
from blaze.schemas.common import HealthResponse
from blaze.services.push_base import PushDispatcher, get_push_dispatcher
from blaze.services.rendezvous import PendingConfirmationStore, get_pending_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Initialized once when the module loads
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
    pending: PendingConfirmationStore = Depends(get_pending_store),
):
    db_ok = await ping_database()
    push_ok = dispatcher.is_configured()

    if not db_ok:
        overall = "unhealthy"
        logger.warning("Health check: database unreachable")
    elif not push_ok:
        overall = "degraded"
    else:
        overall = "healthy"

    health = HealthResponse(
        status=overall,
        version=__version__,
        database="connected" if db_ok else "disconnected",
        push="configured" if push_ok else "not_configured",
        pending_confirmations=len(pending),
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    if not db_ok:
        return JSONResponse(status_code=503, content=health.model_dump())
    return health
