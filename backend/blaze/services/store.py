"""
Blaze Backend — Alarm Data Store
=================================

What:  Point lookups and the few writes the backend needs over users, alarms
       and device subscriptions.
Why:   Services (rendezvous, account management) depend on this narrow
       interface instead of writing queries themselves, which keeps them
       testable with a mocked store.
How:   Wraps one AsyncSession per request. SQLAlchemy errors are translated
       into DatabaseError (→ 500 "Unknown error occurred"); a duplicate
       endpoint becomes ConflictError (→ 409).
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blaze.database import get_db_session
from blaze.exceptions import ConflictError, DatabaseError
from blaze.models.alarm import UNKNOWN_LOCATION, Alarm
from blaze.models.subscription import Subscription
from blaze.models.user import User

logger = logging.getLogger(__name__)


class AlarmStore:
    """
    Repository over the users / alarms / subscriptions tables.

    Every lookup is a single indexed query:
        alarms.alarm_serial (unique), users.username (unique),
        subscriptions.user_id (index)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error("Store operation '%s' failed: %s", operation, str(e), exc_info=True)
            raise DatabaseError(context={"operation": operation, "error_type": type(e).__name__})

    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_alarm_by_serial(self, serial: str) -> Optional[Alarm]:
        async with self._guard("get_alarm_by_serial"):
            result = await self.session.execute(
                select(Alarm).where(Alarm.alarm_serial == serial)
            )
            return result.scalars().first()

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self._guard("get_user_by_username"):
            result = await self.session.execute(
                select(User).where(User.username == username)
            )
            return result.scalar_one_or_none()

    async def get_subscriptions_for_user(self, user_id: int) -> List[Subscription]:
        async with self._guard("get_subscriptions_for_user"):
            result = await self.session.execute(
                select(Subscription)
                .where(Subscription.user_id == user_id)
                .order_by(Subscription.id)
            )
            return list(result.scalars().all())

    async def list_subscriptions(self) -> List[Subscription]:
        async with self._guard("list_subscriptions"):
            result = await self.session.execute(select(Subscription).order_by(Subscription.id))
            return list(result.scalars().all())

    async def list_alarms(self) -> List[Alarm]:
        async with self._guard("list_alarms"):
            result = await self.session.execute(select(Alarm).order_by(Alarm.id))
            return list(result.scalars().all())

    async def list_users(self) -> List[User]:
        async with self._guard("list_users"):
            result = await self.session.execute(select(User).order_by(User.id))
            return list(result.scalars().all())

    # ── Writes ────────────────────────────────────────────────────────────

    async def add_subscription(
        self,
        user_id: int,
        endpoint: str,
        p256dh: str,
        auth: str,
        expiration_time: Optional[str] = None,
    ) -> Subscription:
        """
        Insert a device subscription.

        Raises:
            ConflictError: the endpoint is already registered (unique index)
            DatabaseError: any other database failure
        """
        async with self._guard("find_subscription"):
            existing = await self.session.execute(
                select(Subscription.id).where(Subscription.endpoint == endpoint)
            )
            if existing.first() is not None:
                logger.info("Duplicate subscription endpoint for user %s", user_id)
                raise ConflictError(message="Duplicate endpoint error", context={"user_id": user_id})

        subscription = Subscription(
            user_id=user_id,
            endpoint=endpoint,
            expiration_time=expiration_time,
            p256dh=p256dh,
            auth=auth,
        )
        try:
            self.session.add(subscription)
            await self.session.flush()
            return subscription
        except IntegrityError:
            # Lost a race with a concurrent registration of the same endpoint
            await self.session.rollback()
            raise ConflictError(message="Duplicate endpoint error", context={"user_id": user_id})
        except SQLAlchemyError as e:
            logger.error("Failed to store subscription: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "add_subscription"})

    async def add_user(
        self,
        username: str,
        password_hash: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        email: Optional[str] = None,
        admin: bool = False,
    ) -> User:
        """
        Raises:
            ConflictError: the username is taken (unique index)
        """
        user = User(
            username=username,
            password=password_hash,
            first_name=first_name,
            last_name=last_name,
            email=email,
            admin=admin,
        )
        try:
            self.session.add(user)
            await self.session.flush()
            return user
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(message="User already exists", context={"username": username})
        except SQLAlchemyError as e:
            logger.error("Failed to store user: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "add_user"})

    async def add_alarm(self, serial: str, location: str = UNKNOWN_LOCATION) -> Alarm:
        async with self._guard("add_alarm"):
            alarm = Alarm(alarm_serial=serial, location=location)
            self.session.add(alarm)
            await self.session.flush()
            return alarm

    async def has_users(self) -> bool:
        async with self._guard("has_users"):
            result = await self.session.execute(select(User.id).limit(1))
            return result.first() is not None

    async def assign_alarm(self, alarm: Alarm, user: User, location: str) -> Alarm:
        async with self._guard("assign_alarm"):
            alarm.location = location
            alarm.user_id = user.id
            await self.session.flush()
            return alarm

    async def release(self) -> None:
        """
        Ends the current transaction and hands the connection back to the pool.

        Called before a long wait so an idle request does not pin a pooled
        connection.
        """
        async with self._guard("release"):
            await self.session.commit()


async def get_alarm_store(db: AsyncSession = Depends(get_db_session)) -> AlarmStore:
    """FastAPI dependency: an AlarmStore bound to the request's session."""
    return AlarmStore(db)
