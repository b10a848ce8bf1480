import os

# Settings are read at import time
os.environ.setdefault("DB_USER", "careerlink")
os.environ.setdefault("DB_PASSWORD", "careerlink")
os.environ.setdefault("DB_NAME", "careerlink_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import app.models  # noqa: F401
from app.core.config import settings
from app.core.database import Base, get_db
from app.repositories.profile import ProfileRepository
from app.schemas.profile import ProfileCreate

PROFILES = [
    ProfileCreate(user_id="U1", first_name="Alice", last_name="Adams", headline="Engineer", company="Acme"),
    ProfileCreate(user_id="U2", first_name="Bob", last_name="Baker", headline="Designer", industry="Media"),
    ProfileCreate(user_id="U3", first_name="Cara", last_name="Chen", headline="Analyst", company="Globex"),
    ProfileCreate(user_id="A1", first_name="Dana", last_name="Diaz", headline="Career Coach", company="Talent Co"),
    ProfileCreate(user_id="A2", first_name="Evan", last_name="Evans", headline="Recruiter", industry="Recruiting"),
    ProfileCreate(user_id="C1", first_name="Finn", last_name="Ford", headline="Graduate"),
    ProfileCreate(user_id="C2", first_name="Gina", last_name="Gray", headline="Student"),
]


@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite file per test, so separate sessions really race"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'relationships.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def profiles(session_factory):
    async with session_factory() as session:
        repo = ProfileRepository(session)
        for profile in PROFILES:
            await repo.create(profile)
    return {profile.user_id: profile for profile in PROFILES}


@pytest_asyncio.fixture
async def client(session_factory, profiles):
    from app.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> dict:
    expire = datetime.now(timezone.utc) + timedelta(minutes=30)
    token = jwt.encode(
        {"sub": user_id, "exp": expire}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return auth_headers
