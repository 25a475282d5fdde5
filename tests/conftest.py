"""
Pytest configuration and fixtures
"""

import hashlib
import os
from pathlib import Path
from typing import AsyncGenerator, Callable, Dict, List

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from core.config import Settings
from models import Base
from models.base import QualityStatus

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures" / "terviseamet"

FEED_BASE_URL = "https://opendata.test/opendata"


def read_fixture(name: str) -> bytes:
    return (FIXTURES_DIR / name).read_bytes()


@pytest.fixture
def fixture_xml() -> Callable[[str], bytes]:
    """Loader for XML files under tests/fixtures/terviseamet"""
    return read_fixture


@pytest.fixture
def test_settings() -> Settings:
    """Settings pointing at a fake feed host with only the current sample year"""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        TERVISEAMET_POOL_FACILITIES_URL=f"{FEED_BASE_URL}/ujulad.xml",
        TERVISEAMET_POOL_LOCATIONS_URL=f"{FEED_BASE_URL}/basseinid.xml",
        TERVISEAMET_BEACH_LOCATIONS_URL=f"{FEED_BASE_URL}/supluskohad.xml",
        TERVISEAMET_POOL_SAMPLES_URL=f"{FEED_BASE_URL}/basseini_veeproovid_{{year}}.xml",
        TERVISEAMET_BEACH_SAMPLES_URL=f"{FEED_BASE_URL}/supluskoha_veeproovid_{{year}}.xml",
        TERVISEAMET_YEARS_BACK=0,
        TERVISEAMET_FETCH_TIMEOUT_SECONDS=5.0,
        TERVISEAMET_MAX_BYTES=1024 * 1024,
        SCHEDULER_ENABLED=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine (SQLite file unless TEST_DATABASE_URL is set)"""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


class RecordingNotifier:
    """Notifier double that remembers every call"""

    def __init__(self, fail_for: tuple = ()):
        self.calls: List[Dict] = []
        self.fail_for = set(fail_for)

    async def notify_status_change(self, user_id, place_id, place_name, previous_status, current_status):
        if user_id in self.fail_for:
            raise RuntimeError(f"push endpoint gone for {user_id}")
        self.calls.append(
            {
                "user_id": user_id,
                "place_id": place_id,
                "place_name": place_name,
                "previous_status": QualityStatus(previous_status),
                "current_status": QualityStatus(current_status),
            }
        )


@pytest.fixture
def recording_notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def flaky_notifier() -> RecordingNotifier:
    """Notifier whose sends to user-1 always fail"""
    return RecordingNotifier(fail_for=("user-1",))


class FeedServer:
    """
    In-memory Terviseamet host for ``httpx.MockTransport``.

    Serves registered bodies with an ETag and answers 304 when the
    request's If-None-Match matches. Unregistered paths are 404.
    """

    def __init__(self):
        self.bodies: Dict[str, bytes] = {}
        self.overrides: Dict[str, httpx.Response] = {}
        self.requests: List[httpx.Request] = []

    def serve(self, filename: str, body: bytes) -> None:
        self.bodies[filename] = body
        self.overrides.pop(filename, None)

    def respond(self, filename: str, response: httpx.Response) -> None:
        self.overrides[filename] = response

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        filename = request.url.path.rsplit("/", 1)[-1]

        if filename in self.overrides:
            return self.overrides[filename]

        body = self.bodies.get(filename)
        if body is None:
            return httpx.Response(404, text="not found")

        etag = '"' + hashlib.md5(body).hexdigest() + '"'
        if request.headers.get("If-None-Match") == etag:
            return httpx.Response(304, headers={"ETag": etag})
        return httpx.Response(
            200,
            content=body,
            headers={"Content-Type": "application/xml; charset=utf-8", "ETag": etag},
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def feed_server() -> FeedServer:
    return FeedServer()
