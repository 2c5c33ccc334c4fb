"""
Blaze Backend — Custom Exception Hierarchy
===========================================

What:  Application-specific exceptions for the different error scenarios.
Why:   Targeted error handling with the right HTTP status and a message that
       never leaks internal details to the client.
How:   Each exception carries a message and optional context dict. Global
       exception handlers (registered in main.py) turn them into JSON
       error responses.
Who:   Raised by services and dependencies; caught by global handlers.

Exception Hierarchy:
    BlazeError (base)
    ├── BadRequestError          → 400 Bad Request
    ├── UnauthorizedError        → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── UnprocessableError       → 422 Unprocessable Entity (missing credential)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── DatabaseError            → 500 Internal Server Error
    └── PushDispatchError        → never surfaced; recorded per device by fan-out
"""

from typing import Any, Dict, Optional


class BlazeError(Exception):
    """
    Base exception for all Blaze application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class BadRequestError(BlazeError):
    """
    Raised when query parameters or body fields are missing or invalid.

    HTTP: 400 Bad Request
    """

    def __init__(
        self,
        message: str = "Missing or incorrect parameters",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class UnauthorizedError(BlazeError):
    """
    Raised when a credential is present but not acceptable.

    When:    Bad signature, expired token, unknown user, wrong controller key,
             or a non-admin calling an admin route.
    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Authentication failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class UnprocessableError(BlazeError):
    """
    Raised when the request carries no credential at all.

    HTTP:    422 Unprocessable Entity
    """

    def __init__(
        self,
        message: str = "Missing authorization credential",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(BlazeError):
    """
    Raised when a requested resource does not exist.

    When:    Unknown alarm serial, alarm without an owner, user without any
             device subscription, unknown username.
    HTTP:    404 Not Found

    The message can be given explicitly so callers can keep the exact
    wording controllers already rely on (e.g. "Couldn't find alarm with
    provided alarm ID").
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(BlazeError):
    """
    Raised when a request collides with existing state.

    When:    Duplicate subscription endpoint, or a second confirmation for an
             (alarm, timestamp) pair that is still awaiting its answer.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "Request conflicts with existing state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(BlazeError):
    """
    Raised when database operations fail unexpectedly.

    HTTP:    500 Internal Server Error

    Security Note:
        The message returned to the client is always generic. Detailed error
        info is logged server-side only.
    """

    def __init__(
        self,
        message: str = "Unknown error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PushDispatchError(BlazeError):
    """
    Raised by a push dispatcher when one device could not be reached.

    Never reaches the HTTP layer: the fan-out catches it and turns it into
    one entry of the `errors` list, then carries on with the next device.

    Attributes:
        status_code: HTTP status returned by the push service, if any
                     (404/410 mean the subscription is gone for good)
    """

    def __init__(
        self,
        message: str = "Error occurred when sending notification",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class RateLimitExceededError(BlazeError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
