"""
photoledger Test Configuration and Shared Fixtures

Provides an in-memory SQLite database, the FastAPI app wired to it, an
async HTTP client, a fake transformation service and account helpers.

Example usage:
    async def test_quota(client, make_account):
        account, token = await make_account(images_used=50, images_quota=50)
        ...
"""

import os

# Must be set before app modules are imported
os.environ["PHOTOLEDGER_TEST_DISABLE_RATELIMIT"] = "1"
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import List

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import create_app
from auth.provider import identity_provider
from core.db import get_session_factory, init_db
from core.models_sql import Account, Lead
from core.transform import get_transformer
from tests.helpers import FakeTransformer


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def transformer():
    return FakeTransformer()


@pytest.fixture
def app(session_factory, transformer):
    application = create_app()
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_transformer] = lambda: transformer
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
def make_account(session_factory):
    """Factory creating an account row and a bearer token for it."""

    async def _make(**fields):
        defaults = {"email": f"user{len(created)}@example.com", "images_used": 0, "images_quota": 50}
        defaults.update(fields)
        account = Account(**defaults)
        async with session_factory() as session:
            session.add(account)
            await session.commit()
        created.append(account)
        return account, identity_provider.create_access_token(account.id)

    created: List[Account] = []
    return _make


@pytest.fixture
def get_account(session_factory):
    async def _get(account_id):
        async with session_factory() as session:
            return await session.get(Account, account_id)
    return _get


@pytest.fixture
def make_lead(session_factory):
    async def _make(ip="203.0.113.7", **fields):
        lead = Lead(ip=ip, **fields)
        async with session_factory() as session:
            session.add(lead)
            await session.commit()
        return lead
    return _make
