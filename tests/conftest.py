"""Shared fixtures for tests."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from marginalia.config import AppConfig
from marginalia.engagement.cache import EngagementCache
from marginalia.engagement.client import EngagementClient
from marginalia.library.database import Database
from marginalia.service.app import create_app
from marginalia.service.store import EngagementStore

READER = "reader_1700000000000_abcdef0123"
OTHER_READER = "reader_1700000000001_0123abcdef"


@pytest.fixture
def db(tmp_path: Path) -> Database:
    db_path = tmp_path / "test.db"
    database = Database(db_path)
    yield database
    database.close()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        service_url="http://testserver",
        site_origin="https://books.example",
        admin_token="s3cret",
        highlight_seconds=0.05,
    )


@pytest.fixture
def store() -> EngagementStore:
    return EngagementStore()


@pytest.fixture
def service(store: EngagementStore, config: AppConfig):
    return create_app(store=store, config=config)


@pytest_asyncio.fixture
async def client(service, config: AppConfig) -> EngagementClient:
    """Client wired to the in-process reference service."""
    engagement = EngagementClient(config, transport=httpx.ASGITransport(app=service))
    yield engagement
    await engagement.close()


@pytest.fixture
def cache(db: Database) -> EngagementCache:
    return EngagementCache(db)
