"""
Shared fixtures: in-memory SQLite database, app client and a fake n8n webhook
"""
import os
import sys
from pathlib import Path

# Add parent folder (project root) to sys.path so local modules can be imported
PROJECT_ROOT = Path(__file__).resolve().parents[1]
proj_root_str = str(PROJECT_ROOT)
if proj_root_str not in sys.path:
    sys.path.insert(0, proj_root_str)

# Must be set before the app modules read their settings
# Defaults to a throwaway SQLite file per test; point it at Postgres in CI
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL or "sqlite+aiosqlite://"
os.environ["TRACING_ENABLED"] = "false"
os.environ.setdefault("APP_PUBLIC_URL", "https://shop.example.com")

import json
from typing import Callable, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from app.main import app
from app.database.database import get_db
from app.models import Base, Profile, Product
from app.services.config_store import ConfigLoader, get_config_loader
from app.services.webhook_client import WebhookClient, get_webhook_client

WEBHOOK_URL = "https://n8n.example.com/webhook/whatsapp"


class FakeWebhook:
    """
    Stands in for n8n. ``responses`` is consumed one status per call; once it
    runs out ``default_status`` is returned. A callable ``error`` raises the
    given transport error instead of answering.
    """

    def __init__(self, default_status: int = 200):
        self.default_status = default_status
        self.responses: List[int] = []
        self.error: Optional[Exception] = None
        self.requests: List[httpx.Request] = []

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        status = self.responses.pop(0) if self.responses else self.default_status
        body = "ok" if status < 400 else "upstream exploded"
        return httpx.Response(status, text=body)

    def client(self) -> WebhookClient:
        return WebhookClient(transport=httpx.MockTransport(self.handler))


# ============================================================================
# FIXTURES
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a fresh database with all tables"""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, poolclass=NullPool, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Get database session for tests"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def webhook():
    return FakeWebhook()


@pytest.fixture
def config_loader():
    return ConfigLoader(ttl_seconds=0)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, webhook, config_loader):
    """Create test client with database, webhook and config overrides"""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_webhook_client] = webhook.client
    app.dependency_overrides[get_config_loader] = lambda: config_loader

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def set_config(db_session, config_loader) -> Callable:
    """Store integration keys the way the admin console does"""
    async def _set(**values):
        await config_loader.save(db_session, values)
    return _set


@pytest_asyncio.fixture
async def enabled_config(set_config):
    await set_config(n8n_enabled=True, n8n_webhook_url=WEBHOOK_URL)


@pytest_asyncio.fixture
async def buyer(db_session):
    """A profile with a WhatsApp number and two products"""
    db_session.add_all([
        Profile(id="user-1", full_name="Ana Souza", email="ana@example.com", whatsapp_number="+5511999990000"),
        Product(id="prod-1", title="Curso de Python"),
        Product(id="prod-2", title="Mentoria"),
    ])
    await db_session.commit()
    return "user-1"
