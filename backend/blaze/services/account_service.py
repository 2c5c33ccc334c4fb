"""
Blaze Backend — Account Service
================================

What:  Accounts, device registration, alarm assignment, broadcast
       notifications, the admin dashboard and the optional demo data.
Why:   These are the supporting operations around the confirmation flow:
       a user needs an account, a device subscription and an assigned alarm
       before GET /api/confirm can reach them.
Who:   Called by the PWA routes and by POST /api/notify.
"""

import logging

from blaze.config import settings
from blaze.exceptions import NotFoundError, UnauthorizedError, UnprocessableError
from blaze.models.user import User
from blaze.schemas.account import (
    AlarmConfigureRequest,
    DashboardAlarm,
    DashboardResponse,
    LoginRequest,
    PushSubscriptionIn,
    RegisterRequest,
)
from blaze.schemas.notification import NotificationContent, NotifyResponse, PushPayload
from blaze.services.auth_service import create_access_token
from blaze.services.fanout import NotificationFanOut
from blaze.services.passwords import DUMMY_HASH, hash_password, verify_password
from blaze.services.store import AlarmStore

logger = logging.getLogger(__name__)


class AccountService:
    """Stateless; every method receives the request's store."""

    # ── Accounts ──────────────────────────────────────────────────────────

    async def register(self, store: AlarmStore, request: RegisterRequest) -> User:
        """
        Create a regular (non-admin) account.

        Raises:
            UnprocessableError: the username is taken (422, as the PWA expects)
        """
        if await store.get_user_by_username(request.username) is not None:
            raise UnprocessableError(message="User already exists", context={"username": request.username})

        user = await store.add_user(
            username=request.username,
            password_hash=hash_password(request.password),
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
        )
        logger.info("Successfully created user %s", user.username)
        return user

    async def login(self, store: AlarmStore, request: LoginRequest) -> str:
        """
        Check the credentials and issue a bearer token.

        Raises:
            UnauthorizedError: unknown username or wrong password, same message
        """
        user = await store.get_user_by_username(request.username)
        stored_hash = user.password if user is not None and user.password else DUMMY_HASH
        if not verify_password(request.password, stored_hash) or user is None:
            raise UnauthorizedError(message="Authentication failed")
        return create_access_token(user.username, is_admin=user.admin)

    async def seed_demo_data(self, store: AlarmStore) -> bool:
        """
        Create the demo admin and an unassigned alarm if no user exists yet.

        Returns True if anything was created. Runs at startup when
        SEED_DEMO_DATA is on.
        """
        if await store.has_users():
            return False

        await store.add_user(
            username=settings.seed_admin_username,
            password_hash=hash_password(settings.seed_admin_password),
            first_name="Blaze",
            last_name="Admin",
            email=settings.seed_admin_email,
            admin=True,
        )
        if await store.get_alarm_by_serial(settings.seed_alarm_serial) is None:
            await store.add_alarm(settings.seed_alarm_serial)
        logger.warning(
            "Demo data created: admin '%s' and alarm '%s'",
            settings.seed_admin_username,
            settings.seed_alarm_serial,
        )
        return True

    # ── Devices and alarms ────────────────────────────────────────────────

    async def subscribe(self, store: AlarmStore, user: User, sub: PushSubscriptionIn) -> None:
        """
        Link a device subscription to `user`.

        Raises:
            ConflictError: endpoint already registered
        """
        expiration = None if sub.expiration_time is None else str(sub.expiration_time)
        await store.add_subscription(
            user_id=user.id,
            endpoint=sub.endpoint,
            p256dh=sub.keys.p256dh,
            auth=sub.keys.auth,
            expiration_time=expiration,
        )
        logger.info("Subscription linked to %s successfully", user.username)

    async def configure_alarm(self, store: AlarmStore, request: AlarmConfigureRequest) -> None:
        """
        Set the alarm's location and make `request.username` its owner.

        Raises:
            NotFoundError: unknown alarm serial or username
        """
        alarm = await store.get_alarm_by_serial(request.alarm_serial)
        if alarm is None:
            raise NotFoundError(resource="alarm", resource_id=request.alarm_serial, message="Unable to find alarm")
        user = await store.get_user_by_username(request.username)
        if user is None:
            raise NotFoundError(resource="user", resource_id=request.username, message="Unable to find user")

        await store.assign_alarm(alarm, user, request.location)
        logger.info("Alarm %s linked to %s at %s", alarm.alarm_serial, user.username, request.location)

    async def notify_all(
        self,
        store: AlarmStore,
        fan_out: NotificationFanOut,
        notification: NotificationContent,
    ) -> NotifyResponse:
        """Send `notification` to every registered device of every user."""
        subscriptions = await store.list_subscriptions()
        payload = PushPayload(title=notification.title, message=notification.message).model_dump()
        delivery = await fan_out.fan_out(subscriptions, payload)
        return NotifyResponse(
            total_subscriptions=delivery.total,
            successful_notifications=delivery.success_count,
            errors=delivery.errors,
        )

    async def dashboard(self, store: AlarmStore) -> DashboardResponse:
        """Every alarm with its location and owner, plus every username."""
        alarms = await store.list_alarms()
        users = await store.list_users()
        owners = {user.id: user.username for user in users}
        return DashboardResponse(
            alarms=[
                DashboardAlarm(
                    alarm_serial=alarm.alarm_serial,
                    location=alarm.location,
                    username=owners.get(alarm.user_id) if alarm.user_id is not None else None,
                )
                for alarm in alarms
            ],
            users=[user.username for user in users],
        )


# ── Singleton Instance ────────────────────────────────────────────────────
account_service = AccountService()
