"""
NightPlan Backend — Application Package Initializer
====================================================

What: Marks the `app` directory as a Python package.
Why:  Enables module imports like `from app.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic and pytest.

Architecture Note:
    The package is the data-contract core of the plans backend. It is embedded
    by an outer host (HTTP API, workers) which owns transport and auth:

    ┌─────────────────────────────────────┐
    │  Host (HTTP API/worker, external)   │  ← transport, auth
    ├─────────────────────────────────────┤
    │         Services (Contracts)        │  ← event building, preference merge
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database / Event channel (I/O)    │  ← async sessions, Redis pub/sub
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
