"""
Blaze Backend — Web Push Dispatcher
====================================

What:  PushDispatcher implementation speaking the Web Push protocol (RFC 8030)
       with VAPID authentication (RFC 8292).
How:   pywebpush encrypts the payload for the subscription's keys and POSTs
       it to the push service endpoint (FCM, Mozilla autopush, APNs web).
       pywebpush is synchronous (requests), so each call runs in a worker
       thread and the event loop keeps serving other requests.
Who:   Created once by the application factory; called by the fan-out for
       every device of every notification.

Failure Semantics:
    - HTTP status > 202 from the push service → WebPushException
      (404/410: subscription expired or unsubscribed, 413: payload too big,
       429: throttled)
    - Network errors / timeouts → requests exceptions
    Both are reported as PushDispatchError. Nothing is retried here; a
    confirmation prompt that arrives late is worse than one recorded as failed.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from pywebpush import WebPushException, webpush

from blaze.config import settings
from blaze.exceptions import PushDispatchError
from blaze.services.push_base import PushDispatcher

logger = logging.getLogger(__name__)


class WebPushDispatcher(PushDispatcher):
    """
    Sends notifications through browser push services using VAPID keys.

    Args default to the application settings; tests pass explicit values.
    """

    def __init__(
        self,
        vapid_private_key: Optional[str] = None,
        vapid_email: Optional[str] = None,
        ttl: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.vapid_private_key = vapid_private_key if vapid_private_key is not None else settings.vapid_private_key
        self.vapid_email = vapid_email or settings.vapid_email
        self.ttl = ttl if ttl is not None else settings.push_ttl
        self.timeout = timeout if timeout is not None else settings.push_timeout

        logger.info(
            "WebPushDispatcher initialized (configured=%s, ttl=%ds, timeout=%.1fs)",
            self.is_configured(),
            self.ttl,
            self.timeout,
        )

    def is_configured(self) -> bool:
        return bool(self.vapid_private_key)

    def _vapid_claims(self) -> Dict[str, str]:
        # Fresh dict per call: pywebpush adds "aud" and "exp" to it in place
        return {"sub": f"mailto:{self.vapid_email}"}

    def _send_blocking(self, subscription_info: Dict[str, Any], data: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=self.vapid_private_key,
            vapid_claims=self._vapid_claims(),
            ttl=self.ttl,
            timeout=self.timeout,
        )

    async def send(self, subscription_info: Dict[str, Any], payload: Dict[str, Any]) -> None:
        if not self.is_configured():
            raise PushDispatchError(
                message="Error occurred when sending notification: push is not configured",
            )

        data = json.dumps(payload)
        try:
            await asyncio.to_thread(self._send_blocking, subscription_info, data)
        except WebPushException as e:
            status = e.response.status_code if e.response is not None else None
            logger.warning("Push service rejected notification (status=%s): %s", status, str(e))
            raise PushDispatchError(status_code=status, context={"reason": str(e)}) from e
        except Exception as e:
            logger.warning("Push delivery failed: %s: %s", type(e).__name__, str(e))
            raise PushDispatchError(context={"error_type": type(e).__name__}) from e
