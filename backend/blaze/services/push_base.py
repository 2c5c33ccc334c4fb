"""
Blaze Backend — Abstract Push Dispatcher Interface
===================================================

What:  Contract for sending one notification payload to one device.
Why:   The fan-out and the rendezvous only need "deliver this to that
       endpoint or tell me it failed"; the web push implementation, and the
       fakes used in tests, plug in behind this interface.
How:   The application factory picks an implementation and stores it on
       app.state; routes receive it through get_push_dispatcher().
"""

from abc import ABC, abstractmethod
from typing import Any, Dict

from starlette.requests import Request


class PushDispatcher(ABC):
    """
    Abstract interface for delivering push notifications.

    Contract:
        - send() delivers one payload to one device subscription
        - Any failure is raised as PushDispatchError
        - Devices are independent: one failure says nothing about the others
        - No retries; the caller decides what a failure means
    """

    @abstractmethod
    async def send(self, subscription_info: Dict[str, Any], payload: Dict[str, Any]) -> None:
        """
        Deliver `payload` (JSON-serializable) to one device.

        Args:
            subscription_info: {endpoint, expirationTime, keys: {p256dh, auth}}
            payload: Notification document understood by the service worker

        Raises:
            PushDispatchError: The push service rejected or never received it.
        """
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the dispatcher has the credentials it needs to send."""
        ...


def get_push_dispatcher(request: Request) -> PushDispatcher:
    """FastAPI dependency: the dispatcher owned by the running application."""
    return request.app.state.push_dispatcher
