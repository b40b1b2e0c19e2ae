"""Shared fixtures for repository tests backed by an on-disk SQLite database."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from stylenya.core.database import SessionFactory, build_session_factory, init_db


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[SessionFactory]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'stylenya.db'}")
    await init_db(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()
