"""
Blaze Backend — Account Service & Store Tests
==============================================

What:  AccountService with a mocked store, and AlarmStore against the
       seeded SQLite database.

What we test:
    ✅ Subscriptions are linked to the caller; duplicates conflict
    ✅ Alarm assignment validates alarm and user
    ✅ Broadcast reaches every subscription and reports failures
    ✅ Dashboard lists alarms with owners
    ✅ Registration, login and the demo data seed
"""

import pytest

from blaze.config import settings
from blaze.database import Base, async_session_factory, engine
from blaze.exceptions import ConflictError, NotFoundError, UnauthorizedError, UnprocessableError
from blaze.models.alarm import UNKNOWN_LOCATION, Alarm
from blaze.models.subscription import Subscription
from blaze.models.user import User
from blaze.schemas.account import AlarmConfigureRequest, LoginRequest, PushSubscriptionIn, RegisterRequest
from blaze.schemas.notification import NotificationContent
from blaze.services.account_service import AccountService
from blaze.services.auth_service import decode_access_token
from blaze.services.fanout import NotificationFanOut
from blaze.services.passwords import hash_password, verify_password
from blaze.services.store import AlarmStore


class TestAccountService:
    """AccountService against a mocked store."""

    def setup_method(self):
        self.service = AccountService()

    @pytest.mark.asyncio
    async def test_subscribe_stores_keys(self, mock_store):
        sub = PushSubscriptionIn.model_validate({
            "endpoint": "https://push.example/new",
            "expirationTime": 1735689600000,
            "keys": {"p256dh": "pk", "auth": "au"},
        })

        await self.service.subscribe(mock_store, User(id=4, username="alice"), sub)

        mock_store.add_subscription.assert_awaited_once_with(
            user_id=4,
            endpoint="https://push.example/new",
            p256dh="pk",
            auth="au",
            expiration_time="1735689600000",
        )

    @pytest.mark.asyncio
    async def test_configure_unknown_alarm(self, mock_store):
        mock_store.get_alarm_by_serial.return_value = None
        request = AlarmConfigureRequest(alarm_serial="NOPE", location="Lab", username="alice")

        with pytest.raises(NotFoundError) as exc_info:
            await self.service.configure_alarm(mock_store, request)

        assert exc_info.value.message == "Unable to find alarm"
        mock_store.assign_alarm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_configure_unknown_user(self, mock_store):
        mock_store.get_alarm_by_serial.return_value = Alarm(alarm_serial="ALARM-2")
        mock_store.get_user_by_username.return_value = None
        request = AlarmConfigureRequest(alarm_serial="ALARM-2", location="Lab", username="ghost")

        with pytest.raises(NotFoundError) as exc_info:
            await self.service.configure_alarm(mock_store, request)

        assert exc_info.value.message == "Unable to find user"

    @pytest.mark.asyncio
    async def test_notify_all(self, mock_store, fake_dispatcher):
        mock_store.list_subscriptions.return_value = [
            Subscription(endpoint="https://push.example/1", p256dh="k", auth="a", user_id=1),
            Subscription(endpoint="https://push.example/2", p256dh="k", auth="a", user_id=2),
        ]
        fake_dispatcher.failing_endpoints.add("https://push.example/2")

        result = await self.service.notify_all(
            mock_store,
            NotificationFanOut(fake_dispatcher),
            NotificationContent(title="Drill", message="Fire drill at noon"),
        )

        assert result.total_subscriptions == 2
        assert result.successful_notifications == 1
        assert len(result.errors) == 1
        _, payload = fake_dispatcher.sent[0]
        assert payload["title"] == "Drill"
        assert payload["message"] == "Fire drill at noon"

    @pytest.mark.asyncio
    async def test_notify_all_without_subscriptions(self, mock_store, fake_dispatcher):
        mock_store.list_subscriptions.return_value = []

        result = await self.service.notify_all(
            mock_store,
            NotificationFanOut(fake_dispatcher),
            NotificationContent(title="t", message="m"),
        )

        assert (result.total_subscriptions, result.successful_notifications, result.errors) == (0, 0, [])

    @pytest.mark.asyncio
    async def test_dashboard(self, mock_store):
        mock_store.list_alarms.return_value = [
            Alarm(alarm_serial="A", location="Hall", user_id=1),
            Alarm(alarm_serial="B", location=UNKNOWN_LOCATION, user_id=None),
        ]
        mock_store.list_users.return_value = [User(id=1, username="alice"), User(id=2, username="bob")]

        result = await self.service.dashboard(mock_store)

        assert [(a.alarm_serial, a.username) for a in result.alarms] == [("A", "alice"), ("B", None)]
        assert result.users == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_register_hashes_password(self, mock_store):
        mock_store.get_user_by_username.return_value = None
        mock_store.add_user.return_value = User(id=9, username="carol")
        request = RegisterRequest(username="carol", password="s3cret", first_name="Carol")

        await self.service.register(mock_store, request)

        kwargs = mock_store.add_user.await_args.kwargs
        assert kwargs["username"] == "carol"
        assert kwargs["first_name"] == "Carol"
        assert kwargs["password_hash"] != "s3cret"
        assert verify_password("s3cret", kwargs["password_hash"])
        assert "admin" not in kwargs

    @pytest.mark.asyncio
    async def test_register_existing_username(self, mock_store):
        mock_store.get_user_by_username.return_value = User(id=1, username="alice")

        with pytest.raises(UnprocessableError) as exc_info:
            await self.service.register(mock_store, RegisterRequest(username="alice", password="x"))

        assert exc_info.value.message == "User already exists"
        mock_store.add_user.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_login_issues_token(self, mock_store):
        mock_store.get_user_by_username.return_value = User(
            id=3, username="root", password=hash_password("pw"), admin=True
        )

        token = await self.service.login(mock_store, LoginRequest(username="root", password="pw"))

        identity = decode_access_token(token)
        assert (identity.username, identity.is_admin) == ("root", True)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "user",
        [
            None,
            User(id=3, username="root", password=hash_password("pw")),
            User(id=4, username="legacy", password=None),
        ],
    )
    async def test_login_failures_look_the_same(self, mock_store, user):
        mock_store.get_user_by_username.return_value = user

        with pytest.raises(UnauthorizedError) as exc_info:
            await self.service.login(mock_store, LoginRequest(username="root", password="wrong"))

        assert exc_info.value.message == "Authentication failed"

    @pytest.mark.asyncio
    async def test_seed_skipped_when_users_exist(self, mock_store):
        mock_store.has_users.return_value = True

        assert await self.service.seed_demo_data(mock_store) is False
        mock_store.add_user.assert_not_awaited()
        mock_store.add_alarm.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_seed_creates_admin_and_alarm(self, mock_store):
        mock_store.has_users.return_value = False
        mock_store.get_alarm_by_serial.return_value = None

        assert await self.service.seed_demo_data(mock_store) is True

        kwargs = mock_store.add_user.await_args.kwargs
        assert kwargs["username"] == settings.seed_admin_username
        assert kwargs["admin"] is True
        assert verify_password(settings.seed_admin_password, kwargs["password_hash"])
        mock_store.add_alarm.assert_awaited_once_with(settings.seed_alarm_serial)


class TestAlarmStore:
    """AlarmStore against the seeded SQLite database."""

    @pytest.mark.asyncio
    async def test_lookups(self, seeded_db):
        async with async_session_factory() as session:
            store = AlarmStore(session)

            alarm = await store.get_alarm_by_serial("ALARM-1")
            assert alarm.location == "Room 104"
            assert alarm.user_id == seeded_db["alice"]

            assert await store.get_alarm_by_serial("missing") is None
            assert (await store.get_alarm_by_serial("ALARM-2")).location == UNKNOWN_LOCATION

            subs = await store.get_subscriptions_for_user(seeded_db["alice"])
            assert [s.endpoint for s in subs] == [
                "https://push.example/alice-phone",
                "https://push.example/alice-laptop",
            ]
            assert await store.get_subscriptions_for_user(seeded_db["bob"]) == []

    @pytest.mark.asyncio
    async def test_duplicate_endpoint_conflicts(self, seeded_db):
        async with async_session_factory() as session:
            store = AlarmStore(session)
            with pytest.raises(ConflictError) as exc_info:
                await store.add_subscription(
                    user_id=seeded_db["bob"],
                    endpoint="https://push.example/alice-phone",
                    p256dh="x",
                    auth="y",
                )
            assert exc_info.value.message == "Duplicate endpoint error"

    @pytest.mark.asyncio
    async def test_add_subscription_and_assign_alarm(self, seeded_db):
        async with async_session_factory() as session:
            store = AlarmStore(session)
            bob = await store.get_user_by_username("bob")
            await store.add_subscription(
                user_id=bob.id, endpoint="https://push.example/bob-phone", p256dh="p", auth="a"
            )
            alarm = await store.get_alarm_by_serial("ALARM-2")
            await store.assign_alarm(alarm, bob, "Basement")
            await session.commit()

        async with async_session_factory() as session:
            store = AlarmStore(session)
            alarm = await store.get_alarm_by_serial("ALARM-2")
            assert (alarm.location, alarm.user_id) == ("Basement", seeded_db["bob"])
            subs = await store.get_subscriptions_for_user(seeded_db["bob"])
            assert [s.endpoint for s in subs] == ["https://push.example/bob-phone"]

    @pytest.mark.asyncio
    async def test_add_user_duplicate_username_conflicts(self, seeded_db):
        async with async_session_factory() as session:
            store = AlarmStore(session)
            with pytest.raises(ConflictError):
                await store.add_user(username="alice", password_hash=hash_password("x"))

    @pytest.mark.asyncio
    async def test_add_user_and_alarm(self, seeded_db):
        async with async_session_factory() as session:
            store = AlarmStore(session)
            await store.add_user(username="carol", password_hash="salt:key", admin=True)
            await store.add_alarm("ALARM-9")
            await session.commit()

        async with async_session_factory() as session:
            store = AlarmStore(session)
            carol = await store.get_user_by_username("carol")
            assert (carol.password, carol.admin) == ("salt:key", True)
            alarm = await store.get_alarm_by_serial("ALARM-9")
            assert (alarm.location, alarm.user_id) == (UNKNOWN_LOCATION, None)
            assert await store.has_users() is True


class TestDemoData:
    """The startup seed against a real database."""

    @pytest.mark.asyncio
    async def test_seed_is_skipped_when_users_exist(self, seeded_db):
        from blaze.main import load_demo_data

        assert await load_demo_data() is False

        async with async_session_factory() as session:
            assert await AlarmStore(session).get_user_by_username(settings.seed_admin_username) is None

    @pytest.mark.asyncio
    async def test_seed_fills_empty_database_once(self, seeded_db):
        from blaze.main import load_demo_data

        async with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                await conn.execute(table.delete())

        assert await load_demo_data() is True
        assert await load_demo_data() is False

        async with async_session_factory() as session:
            store = AlarmStore(session)
            users = await store.list_users()
            assert [(u.username, u.admin) for u in users] == [(settings.seed_admin_username, True)]
            assert verify_password(settings.seed_admin_password, users[0].password)
            assert [a.alarm_serial for a in await store.list_alarms()] == [settings.seed_alarm_serial]
