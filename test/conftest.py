"""
Pytest configuration and fixtures for the church site engagement tests
"""

import os
import sys
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Settings are read at import time, so the environment must be ready first
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite://")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-engagement-tests")
os.environ["VIEW_STORE_BACKEND"] = "memory"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["DEBUG"] = "false"

from churchsite.database import Base  # noqa: E402
from churchsite.models import BlogPost, ContentItem, ContentType, RoleEnum, User, UserBlogPost  # noqa: E402
from utils.mock_utils import auth_headers_for  # noqa: E402

if TEST_DATABASE_URL.startswith("sqlite"):
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, pool_pre_ping=True)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

# Now import and patch the app's database components
import churchsite.database as database_module  # noqa: E402
from churchsite.middleware.rate_limit import limiter  # noqa: E402
from churchsite.services.cache_service import cache_service  # noqa: E402
from churchsite.utils.view_store import InMemoryViewStore, get_view_store  # noqa: E402
from main import app  # noqa: E402

database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Process-wide caches and throttles must not leak between tests."""
    cache_service.clear_memory()
    limiter.reset()
    yield
    cache_service.clear_memory()
    app.dependency_overrides.pop(get_view_store, None)


@pytest.fixture(scope="function")
async def setup_test_database():
    """Create a fresh schema for each test function that needs it."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    try:
        async with test_engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    except Exception as e:
        import logging

        logging.warning(f"Error during test cleanup: {e}")


@pytest.fixture(scope="function")
async def test_db(setup_test_database) -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def view_store() -> InMemoryViewStore:
    """In-memory view store wired into the app for this test."""
    store = InMemoryViewStore()
    app.dependency_overrides[get_view_store] = lambda: store
    return store


@pytest.fixture
async def async_client(setup_test_database, view_store) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
async def test_user(test_db: AsyncSession) -> User:
    user = User(username="reader", email="reader@example.com", role=RoleEnum.user)
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest.fixture
async def other_user(test_db: AsyncSession) -> User:
    user = User(username="second_reader", email="second@example.com", role=RoleEnum.user)
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest.fixture
async def test_admin(test_db: AsyncSession) -> User:
    admin = User(username="pastor", email="admin@example.com", role=RoleEnum.admin)
    test_db.add(admin)
    await test_db.commit()
    await test_db.refresh(admin)
    return admin


@pytest.fixture
async def church_post(test_db: AsyncSession, test_admin: User) -> BlogPost:
    post = BlogPost(
        title="Sabbath Reflections",
        slug="sabbath-reflections",
        excerpt="Thoughts on rest",
        published=True,
        author_id=test_admin.id,
    )
    test_db.add(post)
    await test_db.commit()
    await test_db.refresh(post)
    return post


@pytest.fixture
async def community_post(test_db: AsyncSession, test_user: User) -> UserBlogPost:
    post = UserBlogPost(
        title="My First Potluck",
        slug="my-first-potluck",
        excerpt="What I brought",
        published=True,
        author_id=test_user.id,
    )
    test_db.add(post)
    await test_db.commit()
    await test_db.refresh(post)
    return post


@pytest.fixture
def church_item(church_post: BlogPost) -> ContentItem:
    return ContentItem(id=church_post.id, type=ContentType.CHURCH, slug=church_post.slug)


@pytest.fixture
def community_item(community_post: UserBlogPost) -> ContentItem:
    return ContentItem(id=community_post.id, type=ContentType.COMMUNITY, slug=community_post.slug)


@pytest.fixture
def user_headers(test_user: User) -> dict[str, str]:
    return auth_headers_for(test_user)


@pytest.fixture
def admin_headers(test_admin: User) -> dict[str, str]:
    return auth_headers_for(test_admin)
