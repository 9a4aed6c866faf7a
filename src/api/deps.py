"""FastAPI dependencies."""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Request

from src.models.repository import WatchlistRepository


async def get_repository(request: Request) -> AsyncGenerator[WatchlistRepository, None]:
    """One session per request, from the factory created at startup."""
    async with request.app.state.session_factory() as session:
        yield WatchlistRepository(session)
