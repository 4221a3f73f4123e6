from typing import List, Sequence

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from routers import rate_limit
from routers.uploads import get_image_storage
from services.session_token import create_session_token
from services.storage import LocalImageStorage


PROVIDER_BASE = "https://freepik.test"
RESULT_URL = "https://cdn.freepik.test/result-1.png"


def auth_header(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_session_token(user_id, f'{user_id}@example.com')}"}


class FakeFreepik:
    """httpx.MockTransport handler that imitates the Freepik task API."""

    def __init__(
        self,
        *,
        submit_status: int = 200,
        statuses: Sequence[str] = ("COMPLETED",),
        generated: Sequence[str] = (RESULT_URL,),
        task_id: str = "task-123",
    ):
        self.submit_status = submit_status
        self.statuses = list(statuses)
        self.generated = list(generated)
        self.task_id = task_id
        self.requests: List[httpx.Request] = []
        self.polls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            if self.submit_status >= 400:
                return httpx.Response(self.submit_status, text="upstream exploded")
            return httpx.Response(
                200,
                json={"data": {"task_id": self.task_id, "status": "CREATED", "generated": []}},
            )

        status = self.statuses[min(self.polls, len(self.statuses) - 1)]
        self.polls += 1
        return httpx.Response(
            200,
            json={
                "data": {
                    "task_id": self.task_id,
                    "status": status,
                    "generated": self.generated if status == "COMPLETED" else [],
                }
            },
        )


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "snaptastic.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def upload_root(tmp_path):
    return tmp_path / "uploads"


@pytest_asyncio.fixture
async def api_client(session_maker, upload_root):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_storage] = lambda: LocalImageStorage(
        str(upload_root), "http://test/uploads"
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_image_storage, None)


@pytest.fixture
def use_provider():
    """Route a provider-client dependency to a FakeFreepik handler."""
    installed = []

    def _install(dependency, client_cls, handler, **client_kwargs):
        async def _override():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
                kwargs = {
                    "api_key": "test-freepik-key",
                    "base_url": PROVIDER_BASE,
                    "poll_interval_seconds": 0,
                    **client_kwargs,
                }
                yield client_cls(http, **kwargs)

        app.dependency_overrides[dependency] = _override
        installed.append(dependency)

    yield _install
    for dependency in installed:
        app.dependency_overrides.pop(dependency, None)


@pytest.fixture
def fake_freepik():
    return FakeFreepik


@pytest.fixture
def auth_for():
    return auth_header
