"""
EcoDex Backend - Application Package Initializer
==================================================

What: Marks the `ecodex` directory as a Python package.
Who:  Imported by uvicorn (`ecodex.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Pipeline, Oracle, ...)  │  ← Sequencing, rules, resilience
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
