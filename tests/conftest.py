"""Shared fixtures: in-memory database, AsyncMock Redis, test settings."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "api"))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COOKIE_SECURE", "false")

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from config import Settings
from db.database import Base

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
SIN = "046-454-286"
SIN_DIGITS = "046454286"


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        HASH_SECRET="test-hash-secret",
        ENC_KEY="11" * 32,
        COOKIE_SECURE=False,
        CRON_SECRET="cron-secret",
        ADMIN_API_KEY="admin-key",
        MAIL_API_URL=None,
        S3_BUCKET=None,
    )


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def redis():
    """AsyncMock Redis backed by a dict of hashes, enough for the code store."""
    store: dict[str, dict[str, str]] = {}
    conn = AsyncMock()

    async def hgetall(key):
        return dict(store.get(key, {}))

    async def hset(key, mapping=None, **kwargs):
        store.setdefault(key, {}).update({k: str(v) for k, v in (mapping or {}).items()})
        return len(mapping or {})

    async def hincrby(key, field, amount=1):
        h = store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)
        return int(h[field])

    async def delete(*keys):
        return sum(1 for k in keys if store.pop(k, None) is not None)

    async def expire(key, seconds):
        return key in store

    conn.hgetall.side_effect = hgetall
    conn.hset.side_effect = hset
    conn.hincrby.side_effect = hincrby
    conn.delete.side_effect = delete
    conn.expire.side_effect = expire
    conn.store = store
    return conn


def page1(email="driver@example.com", **extra):
    data = {
        "firstName": "Sam",
        "lastName": "Driver",
        "email": email,
        "sin": SIN,
        "phone": "555-0100",
    }
    data.update(extra)
    return data


async def start_tracker(db, settings, *, sin=SIN, now=T0, application_type="DRY_VAN",
                        has_flatbed_experience=False, **page1_extra):
    from services.onboarding import OnboardingService

    service = OnboardingService(db, settings)
    result = await service.start(
        identifier=sin,
        company_id="ssp-ca",
        application_type=application_type,
        has_flatbed_experience=has_flatbed_experience,
        prequalifications={"over21": True, "canCrossBorder": True},
        application_page1=page1(**page1_extra),
        now=now,
    )
    await db.commit()
    return result
