"""
Blaze Backend — Notification Request/Response Schemas
======================================================

What:  Pydantic models for the controller-facing API (/api/notify,
       /api/confirm) and for the payload pushed to devices.
Why:   The alarm controller firmware parses camelCase JSON
       (totalSubscriptions, successfulNotifications), so every model here
       serializes by alias while Python code uses snake_case names.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class NotificationContent(BaseModel):
    """A plain notification sent to every registered device."""
    title: str = Field(min_length=1, description="Title of the displayed notification", examples=["Fire Detected!"])
    message: str = Field(description="Body text of the notification", examples=["Fire confirmed in room 104."])


class NotifyRequest(BaseModel):
    """Body of POST /api/notify."""
    notification: NotificationContent


class NotifyResponse(BaseModel):
    """
    What:  Delivery summary of a fan-out.
    Who:   Returned by POST /api/notify.

    A caller cannot tell "no devices" from "every dispatch failed" without
    looking at `errors`; both report successfulNotifications == 0.
    """
    total_subscriptions: int = Field(alias="totalSubscriptions", description="Number of device subscriptions targeted")
    successful_notifications: int = Field(alias="successfulNotifications", description="Dispatches accepted by the push service")
    errors: List[str] = Field(default_factory=list, description="One entry per failed dispatch, in dispatch order")

    model_config = {"populate_by_name": True}


class ConfirmationResponse(BaseModel):
    """
    What:  Outcome of one alarm-confirmation cycle.
    Who:   Returned by GET /api/confirm.

    confirmed:
        true  → the user confirmed the fire
        false → the user reported a false alarm
        null  → nobody answered before the confirmation timeout
    """
    confirmed: Optional[bool] = Field(default=None, description="User's answer, null on timeout")
    location: str = Field(description="Location label of the alarm", examples=["University of Michigan - Dearborn"])
    total_subscriptions: int = Field(alias="totalSubscriptions")
    successful_notifications: int = Field(alias="successfulNotifications")
    errors: List[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class PushAction(BaseModel):
    """A button rendered on the device notification."""
    action: str
    title: str
    type: str = "button"


class PushPayload(BaseModel):
    """
    What:  JSON document delivered to the device's service worker.
    How:   The worker shows `title`, uses `message` as the body, renders
           `actions` as buttons and keeps `metadata` as notification data.
    """
    title: str
    message: str
    actions: List[PushAction] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
