"""
Supermarket Monitor — Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory database (aiosqlite) with a session factory
- Deterministic identity / retry plumbing
- Sample product markup
- Async test support via pytest-asyncio
"""

from __future__ import annotations

import random
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.models.base import Base
from src.scraper.identity import IdentityGenerator


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

pytest_plugins = ("pytest_asyncio",)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory SQLite database.

    Every session from the factory shares the same connection, so data
    written through one is visible to the next.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest.fixture
async def mock_db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Single async session on the in-memory database."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Scraper Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded_identities() -> IdentityGenerator:
    return IdentityGenerator(random.Random(1234))


@pytest.fixture
def product_page() -> str:
    """Product page in the shape the reference retailer serves."""
    return """
    <html>
      <head>
        <title>Φέτα ΠΟΠ 400g | Sklavenitis</title>
        <meta property="og:title" content="Φέτα ΠΟΠ 400g">
      </head>
      <body>
        <h1 class="product-title">  Φέτα ΠΟΠ 400g  </h1>
        <div class="main-price">
          <div class="price" data-price="5.49">5,49 €</div>
        </div>
      </body>
    </html>
    """
