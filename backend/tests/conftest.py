"""
EcoDex Backend - Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session: AsyncMock session for failure-injection tests
    ├── db_engine:       In-memory SQLite (aiosqlite) with all tables created
    ├── session_factory: async_sessionmaker bound to db_engine
    ├── db_session:      One session from session_factory
    ├── make_user:       Inserts a user with a chosen experience total
    ├── make_image:      Pillow-generated image bytes of any size/format
    └── test_client:     HTTPX AsyncClient with the DB dependency overridden
"""

import os

# Override settings BEFORE any ecodex import: config.py reads the environment
# at import time and database.py builds its engine from it.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import io
import json
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ecodex.database import Base, get_db_session
from ecodex.models.discovery import Discovery  # noqa: F401
from ecodex.models.user import User


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def species_reply(
    scientific_name: str = "Panthera onca",
    name: str = "Jaguar",
    species_type: str = "animal",
    conservation_status: Optional[str] = "near_threatened",
    commonality: Optional[str] = "rare",
    confidence: str = "High",
    prose: bool = True,
) -> str:
    """An oracle reply as the model tends to write it: JSON wrapped in prose."""
    payload = {
        "name": name,
        "scientificName": scientific_name,
        "type": species_type,
        "description": "The largest cat in the Americas, with a bite strong enough to pierce turtle shells.",
        "habitat": "Tropical rainforest, swamps and grasslands near water",
        "region": "Central and South America",
        "stats": {"size": "1.1-1.85 m", "weight": "56-96 kg", "lifespan": "12-15 years", "diet": "Carnivore"},
        "abilities": [{"name": "Crushing Bite", "description": "Kills prey by piercing the skull"}],
        "funFacts": ["Jaguars are strong swimmers", "Their name may mean 'one who kills with one leap'"],
        "conservationStatus": conservation_status,
        "commonality": commonality,
        "confidence": confidence,
    }
    body = json.dumps(payload, indent=2)
    if not prose:
        return body
    return f"Here's what I found in your photo:\n```json\n{body}\n```\nWhat a great sighting!"


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def oracle_reply():
    """The species_reply() builder, as a fixture."""
    return species_reply


@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.flush.side_effect = OperationalError(...)
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock(return_value=0)
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def db_engine():
    """
    In-memory SQLite database with the full schema.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    # expire_on_commit=False matches the application factory: the ledger
    # commits and the entry is serialized afterwards
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """Factory: `await make_user(experience=90)` → committed User."""

    async def _make_user(
        name: str = "Ada Field",
        email: Optional[str] = None,
        experience: int = 0,
    ) -> User:
        async with session_factory() as session:
            user = User(
                name=name,
                email=email or f"{os.urandom(4).hex()}@example.org",
                experience=experience,
                level=experience // 100 + 1,
                discovery_count=0,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def make_image():
    """Factory: `make_image(1600, 1200, "PNG")` → encoded image bytes."""

    def _make_image(width: int = 400, height: int = 300, fmt: str = "PNG", mode: str = "RGB") -> bytes:
        color = (34, 139, 34, 255) if mode == "RGBA" else (34, 139, 34)
        img = Image.new(mode, (width, height), color)
        buf = io.BytesIO()
        img.save(buf, format=fmt)
        return buf.getvalue()

    return _make_image


@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport,
    with get_db_session bound to the in-memory test database.
    """
    from ecodex.main import app

    async def _override_db_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
