# Routes package init
"""
Blaze Backend — API Routes Package
===================================

What:  HTTP route handlers that accept requests and return responses.

Route Inventory:
    - notifications.py: POST /api/notify       (broadcast to all devices)
                        GET  /api/confirm      (alarm confirmation, long wait)
                        GET  /api/response     (device answers a confirmation)
    - pwa.py:           POST /register         (create an account)
                        POST /login            (username/password → token)
                        POST /subscribe        (register a device)
                        POST /alarm            (assign alarm to user)
                        POST /authenticate     (token check)
                        POST /authenticateAdmin
                        GET  /dashboard        (admin overview)
    - health.py:        GET  /health           (service health check)

Design Principle:
    Routes stay THIN: read the request, call a service, shape the response.
    Business logic lives in blaze.services so it can be tested without HTTP.
"""
