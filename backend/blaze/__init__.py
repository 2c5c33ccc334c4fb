"""
Blaze Backend — Application Package Initializer
================================================

What: Marks the `blaze` directory as a Python package.
Why:  Enables module imports like `from blaze.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by pytest and uvicorn.

Architecture Note:
    The backend keeps the usual layered split:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Rendezvous, Fan-out)    │  ← Confirmation protocol, push delivery
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The one piece of long-lived in-memory state, the set of pending alarm
    confirmations, is owned by the application object (app.state) and handed
    to services through dependencies.
"""

__version__ = "0.1.0"
