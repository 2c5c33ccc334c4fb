"""
Blaze Backend — Alarm Confirmation Rendezvous
==============================================

What:  Lets the alarm controller ask "is there really a fire?" and get the
       answer from the owner's phone within the same HTTP request.
Why:   The question goes out as a push notification, but the answer comes
       back on a *different* request (GET /api/response from the device).
       Something has to park the controller's request and hand it the answer.
How:   Each confirmation cycle gets a PendingConfirmation holding an
       asyncio.Future. The controller's request awaits that future with a
       timeout; the device's request looks the entry up and resolves it.

Flow:
    Controller ──GET /api/confirm──▶ ConfirmationRendezvous
                                        │ 1. look up alarm / owner / devices
                                        │ 2. fan out confirm/deny prompt
                                        │ 3. register PendingConfirmation
                                        │ 4. await future (≤ timeout)
    Phone ─────GET /api/response──▶ ResponseCorrelator
                                        │ take entry, resolve future
                                        ▼
    Controller ◀── {confirmed, location, counts, errors}

State Machine (per entry):
    CREATED → AWAITING_RESPONSE → RESOLVED_CONFIRMED
                                → RESOLVED_DENIED
                                → RESOLVED_TIMEOUT

Exactly-once:
    Whoever removes the entry from the PendingConfirmationStore completes it.
    All store operations are synchronous (no await between check and
    removal) and run on the event loop thread, so the correlator and the
    timeout path can never both claim the same entry.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from starlette.requests import Request

from blaze.config import settings
from blaze.exceptions import BadRequestError, ConflictError, NotFoundError
from blaze.models.alarm import Alarm
from blaze.schemas.notification import ConfirmationResponse, PushAction, PushPayload
from blaze.services.fanout import FanOutResult, NotificationFanOut
from blaze.services.push_base import PushDispatcher
from blaze.services.store import AlarmStore

logger = logging.getLogger(__name__)

CONFIRM_ACTION = "confirm"
DENY_ACTION = "deny"


class ConfirmationState(str, Enum):
    CREATED = "created"
    AWAITING_RESPONSE = "awaiting_response"
    RESOLVED_CONFIRMED = "resolved_confirmed"
    RESOLVED_DENIED = "resolved_denied"
    RESOLVED_TIMEOUT = "resolved_timeout"


def correlation_key(alarm_serial: str, timestamp: int) -> str:
    """Identifies one trigger of one alarm."""
    return f"{alarm_serial}-{timestamp}"


def format_trigger_time(timestamp: int) -> str:
    """
    Unix seconds → HH:MM:SS in the server's local time.

    Raises:
        BadRequestError: the timestamp is not a representable date, e.g. a
            millisecond value sent where seconds are expected
    """
    try:
        return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")
    except (ValueError, OverflowError, OSError):
        raise BadRequestError(field="timestamp", context={"timestamp": timestamp})


def build_confirmation_prompt(alarm: Alarm, timestamp: int, key: str, trigger_time: str) -> Dict[str, Any]:
    """
    The push payload asking the owner to confirm or deny the fire.

    trigger_time is the already formatted HH:MM:SS shown to the user.

    metadata.correlationKey lets the device echo the exact cycle back
    (GET /api/response?key=...), so a user with several pending alarms can
    answer each one separately.
    """
    payload = PushPayload(
        title="Alarm Confirmation",
        message=(
            f"Alarm was triggered at {alarm.location} at {trigger_time}. "
            "Please confirm the existence of a fire."
        ),
        actions=[
            PushAction(action=CONFIRM_ACTION, title="Confirm Alarm"),
            PushAction(action=DENY_ACTION, title="False Alarm"),
        ],
        metadata={
            "alarmId": alarm.alarm_serial,
            "timestamp": timestamp,
            "correlationKey": key,
        },
    )
    return payload.model_dump()


# ══════════════════════════════════════════════════════════════════════════
# Pending entries and their store
# ══════════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class PendingConfirmation:
    """
    One in-flight confirmation cycle.

    result_sink is the waiting controller request's future; complete() is
    the only place that writes to it, and it refuses a second write.
    """

    correlation_key: str
    owner_user_id: int
    location: str
    total_subscriptions: int
    successful_notifications: int
    errors: List[str]
    result_sink: "asyncio.Future[ConfirmationResponse]"
    state: ConfirmationState = ConfirmationState.CREATED

    @classmethod
    def from_fan_out(
        cls,
        key: str,
        alarm: Alarm,
        delivery: FanOutResult,
        result_sink: "asyncio.Future[ConfirmationResponse]",
    ) -> "PendingConfirmation":
        return cls(
            correlation_key=key,
            owner_user_id=alarm.user_id,
            location=alarm.location,
            total_subscriptions=delivery.total,
            successful_notifications=delivery.success_count,
            errors=list(delivery.errors),
            result_sink=result_sink,
        )

    def to_response(self, confirmed: Optional[bool]) -> ConfirmationResponse:
        return ConfirmationResponse(
            confirmed=confirmed,
            location=self.location,
            total_subscriptions=self.total_subscriptions,
            successful_notifications=self.successful_notifications,
            errors=list(self.errors),
        )

    def complete(self, confirmed: Optional[bool]) -> bool:
        """
        Resolve the waiting request. Returns False if it was already resolved.

        None means nobody answered in time.
        """
        if self.result_sink.done():
            return False
        if confirmed is None:
            self.state = ConfirmationState.RESOLVED_TIMEOUT
        elif confirmed:
            self.state = ConfirmationState.RESOLVED_CONFIRMED
        else:
            self.state = ConfirmationState.RESOLVED_DENIED
        self.result_sink.set_result(self.to_response(confirmed))
        return True


class PendingConfirmationStore:
    """
    The set of confirmations waiting for an answer, keyed by correlation key.

    Owned by the application (app.state.pending_confirmations) and passed to
    both the rendezvous and the correlator. In memory only: a restart
    abandons whatever was in flight.

    None of the methods await, so each one runs to completion without
    another request interleaving.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, PendingConfirmation] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def add(self, entry: PendingConfirmation) -> None:
        """Raises ConflictError if the key already has a live entry."""
        if entry.correlation_key in self._entries:
            raise ConflictError(
                message="A confirmation for this alarm trigger is already pending",
                context={"correlation_key": entry.correlation_key},
            )
        self._entries[entry.correlation_key] = entry
        entry.state = ConfirmationState.AWAITING_RESPONSE

    def discard(self, entry: PendingConfirmation) -> bool:
        """
        Remove `entry` if it is still the live entry for its key.

        Compare-and-remove: a newer entry that reused the key is left alone.
        Returns True if this call removed it.
        """
        if self._entries.get(entry.correlation_key) is entry:
            del self._entries[entry.correlation_key]
            return True
        return False

    def take(self, key: str, owner_user_id: Optional[int] = None) -> Optional[PendingConfirmation]:
        """Remove and return the entry for `key`, optionally only if `owner_user_id` owns it."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if owner_user_id is not None and entry.owner_user_id != owner_user_id:
            return None
        del self._entries[key]
        return entry

    def take_for_owner(self, owner_user_id: int) -> List[PendingConfirmation]:
        """Remove and return every entry waiting on `owner_user_id`."""
        matches = [e for e in self._entries.values() if e.owner_user_id == owner_user_id]
        for entry in matches:
            del self._entries[entry.correlation_key]
        return matches

    def abandon_all(self) -> int:
        """Drop every entry and cancel its waiter. Used at shutdown."""
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if not entry.result_sink.done():
                entry.result_sink.cancel()
        return len(entries)


# ══════════════════════════════════════════════════════════════════════════
# Rendezvous (controller side) and correlator (device side)
# ══════════════════════════════════════════════════════════════════════════

class ConfirmationRendezvous:
    """
    Runs one confirmation cycle for the alarm controller.

    Error Handling:
        Input and store lookups fail fast, before anything is sent:
            timestamp not a valid date            → BadRequestError (400)
            unknown alarm / no owner / no devices → NotFoundError (404)
            same alarm+timestamp already pending  → ConflictError (409)
            database failure                      → DatabaseError (500)
        Push failures are not errors here; they show up in the result's
        errors list and successfulNotifications count.
    """

    def __init__(
        self,
        pending: PendingConfirmationStore,
        fan_out: NotificationFanOut,
        timeout: float,
    ):
        self.pending = pending
        self.fan_out = fan_out
        self.timeout = timeout

    async def confirm_alarm(
        self,
        store: AlarmStore,
        alarm_id: str,
        timestamp: int,
    ) -> ConfirmationResponse:
        """
        Ask the alarm's owner to confirm a trigger and wait for the answer.

        Returns:
            ConfirmationResponse with confirmed = True / False, or None when
            the timeout elapsed first.
        """
        # Reject an unusable timestamp before touching the database
        trigger_time = format_trigger_time(timestamp)

        # ── Step 1-3: Resolve alarm, owner and devices ────────────────────
        alarm = await store.get_alarm_by_serial(alarm_id)
        if alarm is None:
            raise NotFoundError(
                resource="alarm",
                resource_id=alarm_id,
                message="Couldn't find alarm with provided alarm ID",
            )
        if alarm.user_id is None:
            raise NotFoundError(
                resource="alarm owner",
                resource_id=alarm_id,
                message="Alarm doesn't have a user assigned",
            )
        subscriptions = await store.get_subscriptions_for_user(alarm.user_id)
        if not subscriptions:
            raise NotFoundError(
                resource="subscription",
                message="Couldn't find user in subscriptions",
                context={"user_id": alarm.user_id},
            )

        key = correlation_key(alarm.alarm_serial, timestamp)
        # Reject before prompting the user a second time for the same trigger
        if key in self.pending:
            raise ConflictError(
                message="A confirmation for this alarm trigger is already pending",
                context={"correlation_key": key},
            )

        # Nothing else is read from the database during this request
        await store.release()

        # ── Step 4-5: Prompt every device ─────────────────────────────────
        prompt = build_confirmation_prompt(alarm, timestamp, key, trigger_time)
        delivery = await self.fan_out.fan_out(subscriptions, prompt)

        # ── Step 6: Register the waiting entry ────────────────────────────
        entry = PendingConfirmation.from_fan_out(
            key, alarm, delivery, asyncio.get_running_loop().create_future()
        )
        self.pending.add(entry)
        logger.info(
            "Awaiting confirmation %s from user %s (%d/%d devices prompted, timeout %.1fs)",
            key,
            entry.owner_user_id,
            delivery.success_count,
            delivery.total,
            self.timeout,
        )

        # ── Step 7-8: Wait for the answer or the timeout ──────────────────
        return await self._await_resolution(entry)

    async def _await_resolution(self, entry: PendingConfirmation) -> ConfirmationResponse:
        try:
            # shield: the timeout must not cancel the future the correlator writes to
            return await asyncio.wait_for(asyncio.shield(entry.result_sink), timeout=self.timeout)
        except asyncio.TimeoutError:
            if self.pending.discard(entry):
                entry.complete(None)
                logger.info("Confirmation %s timed out with no response", entry.correlation_key)
            else:
                # The correlator claimed it as the timer fired; its answer stands
                logger.debug("Confirmation %s resolved at the timeout boundary", entry.correlation_key)
            return entry.result_sink.result()
        finally:
            if not entry.result_sink.done():
                # The waiting request itself went away (disconnect, shutdown)
                self.pending.discard(entry)
                entry.result_sink.cancel()
                logger.info("Confirmation %s abandoned by its caller", entry.correlation_key)


class ResponseCorrelator:
    """
    Delivers a device's confirm/deny answer to the waiting controller request.

    Matching:
        Without a key, every entry owned by the responding user is resolved
        with the same answer (one pending alarm per user is the normal case).
        With the correlationKey from the prompt's metadata, only that entry
        is resolved, and only if the responder owns it.

    No match is not an error: the answer may simply have arrived after the
    timeout already removed the entry.
    """

    def __init__(self, pending: PendingConfirmationStore):
        self.pending = pending

    def submit_response(
        self,
        responding_user_id: int,
        confirmed: bool,
        key: Optional[str] = None,
    ) -> int:
        """Returns how many pending confirmations this response resolved."""
        if key is not None:
            entry = self.pending.take(key, owner_user_id=responding_user_id)
            matches = [entry] if entry is not None else []
        else:
            matches = self.pending.take_for_owner(responding_user_id)

        resolved = sum(1 for entry in matches if entry.complete(confirmed))

        if resolved:
            logger.info(
                "User %s %s %d pending confirmation(s)",
                responding_user_id,
                "confirmed" if confirmed else "denied",
                resolved,
            )
        else:
            logger.info("Response from user %s matched no pending confirmation", responding_user_id)
        return resolved


# ── Dependencies ──────────────────────────────────────────────────────────

def get_pending_store(request: Request) -> PendingConfirmationStore:
    return request.app.state.pending_confirmations


def get_rendezvous(request: Request) -> ConfirmationRendezvous:
    dispatcher: PushDispatcher = request.app.state.push_dispatcher
    return ConfirmationRendezvous(
        pending=get_pending_store(request),
        fan_out=NotificationFanOut(dispatcher),
        timeout=settings.confirmation_timeout,
    )


def get_correlator(request: Request) -> ResponseCorrelator:
    return ResponseCorrelator(get_pending_store(request))
