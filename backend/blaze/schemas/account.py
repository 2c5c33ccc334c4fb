"""
Blaze Backend — Account & Device Schemas
=========================================

What:  Pydantic models for the PWA-facing routes: device subscription,
       alarm configuration and the admin dashboard.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field


class SubscriptionKeys(BaseModel):
    p256dh: str = Field(min_length=1, description="Elliptic curve Diffie-Hellman public key")
    auth: str = Field(min_length=1, description="Authentication secret")


class PushSubscriptionIn(BaseModel):
    """
    The PushSubscription object produced by the browser's PushManager.

    expirationTime is a DOMHighResTimeStamp or null; browsers send a number,
    some clients send a string.
    """
    endpoint: str = Field(min_length=1, description="Push service endpoint URL")
    expiration_time: Optional[Union[int, float, str]] = Field(default=None, alias="expirationTime")
    keys: SubscriptionKeys

    model_config = {"populate_by_name": True}


class SubscribeRequest(BaseModel):
    """Body of POST /subscribe."""
    sub: PushSubscriptionIn


class AlarmConfigureRequest(BaseModel):
    """Body of POST /alarm: link an alarm to a user and set its location."""
    alarm_serial: str = Field(alias="alarmSerial", min_length=1)
    location: str = Field(min_length=1)
    username: str = Field(min_length=1)

    model_config = {"populate_by_name": True}


class MessageResponse(BaseModel):
    message: str


class DashboardAlarm(BaseModel):
    alarm_serial: str = Field(alias="alarmSerial")
    location: str
    username: Optional[str] = Field(default=None, description="Owner, null while the alarm is unassigned")

    model_config = {"populate_by_name": True}


class DashboardResponse(BaseModel):
    """Everything the admin dashboard renders in one call."""
    alarms: List[DashboardAlarm]
    users: List[str]


class RegisterRequest(BaseModel):
    """Body of POST /register."""
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1)
    first_name: Optional[str] = Field(default=None, alias="firstName", max_length=150)
    last_name: Optional[str] = Field(default=None, alias="lastName", max_length=150)
    email: Optional[str] = Field(default=None, max_length=255)

    model_config = {"populate_by_name": True}


class LoginRequest(BaseModel):
    """Body of POST /login."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    token: str = Field(description="Bearer token for the PWA routes and /api/response")
