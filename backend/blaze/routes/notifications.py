"""
Blaze Backend — Notification Route Handlers
============================================

What:  The API used by alarm controllers and by the device's service worker.
       - POST /api/notify    broadcast a notification to every device
       - GET  /api/confirm   ask an alarm's owner to confirm, wait for the answer
       - GET  /api/response  the owner's device answers a pending confirmation
How:   Thin handlers; the rendezvous, correlator and account services do
       the work. Errors surface through the global exception handlers.

Timing:
    GET /api/confirm holds the connection open for up to
    CONFIRMATION_TIMEOUT seconds (15 by default). Controllers must use an
    HTTP timeout longer than that.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from blaze.models.user import User
from blaze.schemas.common import ErrorResponse
from blaze.schemas.notification import ConfirmationResponse, NotifyRequest, NotifyResponse
from blaze.services.account_service import account_service
from blaze.services.auth_service import get_current_user, require_controller
from blaze.services.fanout import NotificationFanOut
from blaze.services.push_base import PushDispatcher, get_push_dispatcher
from blaze.services.rendezvous import (
    ConfirmationRendezvous,
    ResponseCorrelator,
    get_correlator,
    get_rendezvous,
)
from blaze.services.store import AlarmStore, get_alarm_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Notifications"])


@router.post(
    "/notify",
    response_model=NotifyResponse,
    responses={
        400: {"description": "Invalid body", "model": ErrorResponse},
        500: {"description": "Unknown server error", "model": ErrorResponse},
    },
    summary="Notify every registered device",
    dependencies=[Depends(require_controller)],
)
async def notify_all_users(
    body: NotifyRequest,
    store: AlarmStore = Depends(get_alarm_store),
    dispatcher: PushDispatcher = Depends(get_push_dispatcher),
) -> NotifyResponse:
    return await account_service.notify_all(store, NotificationFanOut(dispatcher), body.notification)


@router.get(
    "/confirm",
    response_model=ConfirmationResponse,
    responses={
        400: {"description": "Missing or incorrect parameters", "model": ErrorResponse},
        404: {"description": "Alarm, alarm owner or subscription not found", "model": ErrorResponse},
        409: {"description": "Confirmation for this trigger already pending", "model": ErrorResponse},
        500: {"description": "Unknown server error", "model": ErrorResponse},
    },
    summary="Ask the alarm's owner to confirm a fire",
    description=(
        "Sends a confirm/deny push prompt to every device of the alarm's owner and waits "
        "for the answer. `confirmed` is true or false when the owner answers, and null "
        "when nobody answered before the confirmation timeout."
    ),
    dependencies=[Depends(require_controller)],
)
async def confirm_alarm(
    alarm_id: str = Query(..., alias="alarmId", min_length=1, description="Serial of the alarm that fired"),
    timestamp: int = Query(..., ge=0, description="Unix timestamp the alarm was triggered at"),
    store: AlarmStore = Depends(get_alarm_store),
    rendezvous: ConfirmationRendezvous = Depends(get_rendezvous),
) -> ConfirmationResponse:
    logger.info("Confirmation requested for alarm %s at %d", alarm_id, timestamp)
    return await rendezvous.confirm_alarm(store, alarm_id, timestamp)


@router.get(
    "/response",
    response_class=PlainTextResponse,
    responses={
        200: {"description": "Response received"},
        400: {"description": "Missing or incorrect parameters", "model": ErrorResponse},
        401: {"description": "Invalid token", "model": ErrorResponse},
        422: {"description": "Missing token", "model": ErrorResponse},
    },
    summary="Log the user's answer to an alarm confirmation",
)
async def log_response(
    confirmed: bool = Query(..., description="True to confirm the fire, false for a false alarm"),
    user_id: Optional[int] = Query(
        default=None,
        alias="userId",
        description="Ignored; the responder is always the token's user",
    ),
    key: Optional[str] = Query(
        default=None,
        description="correlationKey from the prompt's metadata, to answer one specific alarm",
    ),
    user: User = Depends(get_current_user),
    correlator: ResponseCorrelator = Depends(get_correlator),
) -> PlainTextResponse:
    if user_id is not None and user_id != user.id:
        logger.warning("userId %s in query does not match token user %s; using token", user_id, user.id)
    correlator.submit_response(user.id, confirmed, key=key)
    return PlainTextResponse("Response received")
