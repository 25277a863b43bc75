# tests/conftest.py

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from taskboard.core.config import Settings
from taskboard.core.database import build_engine, build_sessionmaker, create_tables
from taskboard.main import create_app
from taskboard.services.consistency import ConsistencyEngine
from taskboard.stores.tasks import TaskStore
from taskboard.stores.users import UserStore


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """
    Settings pointing at a throwaway SQLite file.

    `.env` is ignored so a developer's local configuration never leaks into tests.
    """
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'taskboard.db'}",
        TASK_DEFAULT_LIMIT=100,
    )


@pytest_asyncio.fixture()
async def sessions(settings: Settings) -> AsyncIterator[async_sessionmaker]:
    engine = build_engine(settings)
    await create_tables(engine)
    try:
        yield build_sessionmaker(engine)
    finally:
        await engine.dispose()


@pytest.fixture()
def task_store(sessions: async_sessionmaker, settings: Settings) -> TaskStore:
    return TaskStore(sessions, default_limit=settings.TASK_DEFAULT_LIMIT)


@pytest.fixture()
def user_store(sessions: async_sessionmaker) -> UserStore:
    return UserStore(sessions)


@pytest.fixture()
def consistency(task_store: TaskStore, user_store: UserStore) -> ConsistencyEngine:
    return ConsistencyEngine(task_store, user_store)


@pytest.fixture()
def client(settings: Settings) -> Iterator[TestClient]:
    with TestClient(create_app(settings)) as c:
        yield c
