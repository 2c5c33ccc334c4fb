"""
Blaze Backend — Notification Fan-out
=====================================

What:  Sends the same payload to every device subscription in a list and
       reports how many deliveries succeeded.
Why:   Both "notify everyone" and the alarm confirmation prompt need the
       same aggregate: total targeted, successes, one error per failure.
How:   One dispatcher call per subscription, all started together with
       asyncio.gather. Each call catches its own failure, so a dead device
       never stops delivery to the others.

Ordering:
    gather() returns results in argument order, so `errors` follows the
    order of the subscription list even though dispatches overlap in time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from blaze.exceptions import PushDispatchError
from blaze.models.subscription import Subscription
from blaze.services.push_base import PushDispatcher

logger = logging.getLogger(__name__)

GENERIC_DISPATCH_ERROR = "Error occurred when sending notification"


@dataclass
class FanOutResult:
    total: int = 0
    success_count: int = 0
    errors: List[str] = field(default_factory=list)


class NotificationFanOut:
    """Delivers one payload to many devices through a PushDispatcher."""

    def __init__(self, dispatcher: PushDispatcher):
        self.dispatcher = dispatcher

    async def fan_out(
        self,
        subscriptions: Sequence[Subscription],
        payload: Dict[str, Any],
    ) -> FanOutResult:
        """
        Dispatch `payload` to each subscription.

        Returns:
            FanOutResult; an empty list returns zeros without touching
            the dispatcher. Never raises for delivery failures.
        """
        if not subscriptions:
            return FanOutResult()

        outcomes = await asyncio.gather(
            *(self._dispatch(subscription, payload) for subscription in subscriptions)
        )
        errors = [outcome for outcome in outcomes if outcome is not None]

        result = FanOutResult(
            total=len(subscriptions),
            success_count=len(subscriptions) - len(errors),
            errors=errors,
        )
        logger.info(
            "Fan-out complete: %d/%d delivered, %d failed",
            result.success_count,
            result.total,
            len(errors),
        )
        return result

    async def _dispatch(self, subscription: Subscription, payload: Dict[str, Any]) -> Optional[str]:
        """Returns None on success, or the error entry for this device."""
        try:
            await self.dispatcher.send(subscription.to_subscription_info(), payload)
        except PushDispatchError as e:
            # The dispatcher only sees the wire form, which has no owner
            e.context.setdefault("user_id", subscription.user_id)
            logger.warning(
                "Error sending notification to user %s: %s | Context: %s",
                subscription.user_id,
                e.message,
                e.context,
            )
            return e.message
        except Exception as e:
            # A misbehaving dispatcher must not cost the other devices their prompt
            logger.error(
                "Unexpected dispatcher error for user %s: %s",
                subscription.user_id,
                str(e),
                exc_info=True,
            )
            return GENERIC_DISPATCH_ERROR

        logger.debug("Notification sent successfully to user %s", subscription.user_id)
        return None
