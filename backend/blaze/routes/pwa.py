"""
Blaze Backend — PWA Route Handlers
===================================

What:  Routes called by the progressive web app. All but /register and
       /login need a bearer token.
       - POST /register           create an account
       - POST /login              exchange username/password for a token
       - POST /subscribe          register this device for push
       - POST /alarm              link an alarm to a user and set its location
       - POST /authenticate       check the bearer token
       - POST /authenticateAdmin  check the bearer token belongs to an admin
       - GET  /dashboard          admin overview of alarms and users
"""

import logging

from fastapi import APIRouter, Depends

from blaze.models.user import User
from blaze.schemas.account import (
    AlarmConfigureRequest,
    DashboardResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SubscribeRequest,
    TokenResponse,
)
from blaze.schemas.common import ErrorResponse
from blaze.services.account_service import account_service
from blaze.services.auth_service import get_current_user, require_admin
from blaze.services.store import AlarmStore, get_alarm_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["PWA"])

AUTH_RESPONSES = {
    401: {"description": "Invalid or expired token", "model": ErrorResponse},
    422: {"description": "Missing token", "model": ErrorResponse},
}


@router.post(
    "/register",
    response_model=MessageResponse,
    responses={422: {"description": "User already exists", "model": ErrorResponse}},
    summary="Create a user account",
)
async def register_user(
    body: RegisterRequest,
    store: AlarmStore = Depends(get_alarm_store),
) -> MessageResponse:
    await account_service.register(store, body)
    return MessageResponse(message="User created successfully!")


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={401: {"description": "Invalid username/password", "model": ErrorResponse}},
    summary="Log a user in",
    description="Returns a bearer token valid for JWT_EXPIRE_MINUTES (60 by default).",
)
async def login_user(
    body: LoginRequest,
    store: AlarmStore = Depends(get_alarm_store),
) -> TokenResponse:
    return TokenResponse(token=await account_service.login(store, body))


@router.post(
    "/subscribe",
    response_model=MessageResponse,
    responses={
        **AUTH_RESPONSES,
        409: {"description": "Duplicate endpoint", "model": ErrorResponse},
    },
    summary="Subscribe this device to push notifications",
)
async def subscribe(
    body: SubscribeRequest,
    user: User = Depends(get_current_user),
    store: AlarmStore = Depends(get_alarm_store),
) -> MessageResponse:
    await account_service.subscribe(store, user, body.sub)
    return MessageResponse(message=f"Subscription linked to {user.username} successfully")


@router.post(
    "/alarm",
    response_model=MessageResponse,
    responses={
        **AUTH_RESPONSES,
        404: {"description": "Unknown alarm or user", "model": ErrorResponse},
    },
    summary="Link an alarm to a user",
)
async def configure_alarm(
    body: AlarmConfigureRequest,
    user: User = Depends(get_current_user),
    store: AlarmStore = Depends(get_alarm_store),
) -> MessageResponse:
    await account_service.configure_alarm(store, body)
    return MessageResponse(message="Alarm successfully linked")


@router.post("/authenticate", response_model=MessageResponse, responses=AUTH_RESPONSES)
async def authenticate_user(user: User = Depends(get_current_user)) -> MessageResponse:
    return MessageResponse(message=f"{user.username} has a valid JWT")


@router.post("/authenticateAdmin", response_model=MessageResponse, responses=AUTH_RESPONSES)
async def authenticate_admin(user: User = Depends(require_admin)) -> MessageResponse:
    return MessageResponse(message=f"{user.username} has a valid JWT and is an admin")


@router.get("/dashboard", response_model=DashboardResponse, responses=AUTH_RESPONSES)
async def get_admin_dashboard(
    admin: User = Depends(require_admin),
    store: AlarmStore = Depends(get_alarm_store),
) -> DashboardResponse:
    return await account_service.dashboard(store)
