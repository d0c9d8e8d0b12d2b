"""Shared fixtures: scripted AI providers, in-memory store, settings, Postgres."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pai.agent.store import MemoryStore
from pai.ai.router import Router
from pai.ai.schemas import CompletionRequest, CompletionResponse, ModelInfo, StreamChunk, TaskType
from pai.config import Settings
from pai.storage.database import Database
from pai.storage.migrator import run_migrations

# ---------------------------------------------------------------------------
# Mock AI provider
# ---------------------------------------------------------------------------


class CallTracker:
    """Records every request a provider receives, grouped by task."""

    def __init__(self) -> None:
        self.requests: list[CompletionRequest] = []

    def record(self, request: CompletionRequest) -> None:
        self.requests.append(request)

    def for_task(self, task: TaskType) -> list[CompletionRequest]:
        return [r for r in self.requests if r.task == task]

    @property
    def count(self) -> int:
        return len(self.requests)

    @property
    def last(self) -> CompletionRequest:
        return self.requests[-1]


class MockProvider:
    """Scripted Provider.

    Teaching calls return ``content``; analysis (compaction) calls return
    ``summary``. Set ``error`` to make every call fail.
    """

    def __init__(
        self,
        name: str = "mock",
        content: str = "Mock response",
        summary: str = "Student practised linear equations.",
        error: Exception | None = None,
        model: str = "mock-model",
    ) -> None:
        self.name = name
        self.content = content
        self.summary = summary
        self.error = error
        self.model = model
        self.calls = CallTracker()
        self.closed = False

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.calls.record(request)
        if self.error is not None:
            raise self.error
        content = self.summary if request.task == TaskType.ANALYSIS else self.content
        return CompletionResponse(content=content, model=self.model, input_tokens=10, output_tokens=5)

    async def stream_complete(self, request: CompletionRequest):
        response = await self.complete(request)
        yield StreamChunk(content=response.content, done=True)

    def models(self) -> list[ModelInfo]:
        return [ModelInfo(self.model, "Mock", 4096)]

    async def health_check(self) -> None:
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def mock_router(mock_provider) -> Router:
    router = Router()
    router.register(mock_provider.name, mock_provider)
    return router


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings():
    """Factory for Settings that ignores any local .env file."""

    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db(make_settings) -> AsyncIterator[Database]:
    """Postgres with migrations applied. Skips when the database is unreachable.

    Sessions handed out during the test join one outer transaction; store
    commits become SAVEPOINT releases and everything is rolled back after
    the test.
    """
    database = Database(make_settings())
    try:
        await database.connect()
    except Exception as e:
        await database.disconnect()
        pytest.skip(f"Postgres not available: {e}")
    await run_migrations(database.engine)

    async with database.engine.connect() as conn:
        trans = await conn.begin()
        database.session_factory = async_sessionmaker(
            bind=conn,
            class_=AsyncSession,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )
        yield database
        await trans.rollback()

    await database.disconnect()
