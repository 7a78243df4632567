"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
import uuid
from pathlib import Path
from typing import Optional

# Minimal environment for tests; must be set before app modules import settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("SEED_BUSINESS_TYPES", "false")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

import app.models  # noqa: F401
from app.core.db import build_engine
from app.models.base import Base
from app.models.deal import Deal
from app.models.partner import Partner
from app.services.deal_pipeline import DealPipelineService
from app.services.event_dispatcher import get_dispatcher


@pytest.fixture(autouse=True)
def dispatcher():
    """Event dispatcher with no subscribers, reset after every test."""
    instance = get_dispatcher()
    instance.clear()
    yield instance
    instance.clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh file-backed SQLite database per test (shared by concurrent sessions)."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'partnerhub_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_partner(db):
    """Factory for partners; pass ``parent`` to hang the new partner below another."""

    async def _make(
        email: Optional[str] = None,
        parent: Optional[Partner] = None,
        is_admin: bool = False,
        partner_id: Optional[str] = None,
    ) -> Partner:
        partner = Partner(
            id=partner_id or str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@partners.test",
            first_name="Test",
            last_name="Partner",
            parent_partner_id=parent.id if parent else None,
            is_admin=is_admin,
            is_active=True,
        )
        db.add(partner)
        await db.commit()
        return partner

    return _make


@pytest_asyncio.fixture
async def admin(make_partner):
    return await make_partner(email="admin@partnerhub.test", is_admin=True)


@pytest_asyncio.fixture
async def chain(make_partner):
    """Three-level referral chain: returns (referrer, level2, level3)."""
    level3 = await make_partner(email="level3@partners.test")
    level2 = await make_partner(email="level2@partners.test", parent=level3)
    referrer = await make_partner(email="referrer@partners.test", parent=level2)
    return referrer, level2, level3


@pytest.fixture
def make_deal(db):
    """Factory for deals submitted through the pipeline service."""

    async def _make(referrer: Partner, business_name: str = "Corner Cafe Ltd", **fields) -> Deal:
        payload = {"business_name": business_name, **fields}
        return await DealPipelineService(db).submit_deal(referrer.id, payload)

    return _make
