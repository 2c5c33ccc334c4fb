# Middleware package init
"""
Blaze Backend — Middleware Package
===================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain:
    Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Rate Limit first: reject abusive clients before any work is done
    2. Request ID: correlation ID for every log line and error body
    3. Logging: method, path, status and duration, tagged with the request ID

Long requests:
    GET /api/confirm stays open until the owner answers or the confirmation
    timeout fires. None of the middleware buffers or times out on its own,
    so the wait is bounded only by CONFIRMATION_TIMEOUT.
"""
