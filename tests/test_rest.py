"""REST API endpoints via httpx ASGITransport."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from pai.agent.engine import Engine
from pai.ai.errors import ProviderError
from pai.ai.router import Router
from pai.api.rest import create_app
from tests.conftest import MockProvider


@pytest.fixture
def engine(mock_router, memory_store, make_settings) -> Engine:
    return Engine(mock_router, memory_store, settings=make_settings())


@pytest_asyncio.fixture
async def client(engine, mock_router):
    app = create_app(engine=engine, router=mock_router)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestHealth:
    async def test_healthz(self, client):
        r = await client.get("/healthz")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    async def test_readyz_with_provider(self, client):
        r = await client.get("/readyz")
        assert r.status_code == 200
        assert r.json() == {"status": "ready"}

    async def test_readyz_without_provider(self, memory_store, make_settings):
        router = Router()
        app = create_app(engine=Engine(router, memory_store, settings=make_settings()), router=router)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            r = await c.get("/readyz")
        assert r.status_code == 503
        assert r.json() == {"status": "no_providers"}

    async def test_providers_health(self, memory_store, make_settings):
        router = Router()
        router.register("ok", MockProvider(name="ok"))
        router.register("down", MockProvider(name="down", error=ProviderError("down", "unauthorized", 401)))
        app = create_app(engine=Engine(router, memory_store, settings=make_settings()), router=router)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
            r = await c.get("/providers/health")
        body = r.json()
        assert body["ok"] == "ok"
        assert "unauthorized" in body["down"]


class TestChat:
    async def test_chat_returns_reply(self, client, memory_store):
        r = await client.post("/chat", json={"user_id": "u1", "text": "What is 3 + 4?"})
        assert r.status_code == 200
        assert r.json() == {"response": "Mock response"}
        conv = await memory_store.get_active_conversation("u1")
        assert conv.messages[0].content == "What is 3 + 4?"

    async def test_chat_command(self, client):
        r = await client.post("/chat", json={"user_id": "u1", "text": "/start", "first_name": "Aina"})
        assert r.json()["response"].startswith("Hai Aina!")

    async def test_chat_reply_to(self, client, memory_store):
        await client.post(
            "/chat",
            json={"user_id": "u1", "text": "why?", "reply_to_text": "Step 2: isolate x"},
        )
        conv = await memory_store.get_active_conversation("u1")
        assert "Step 2: isolate x" in conv.messages[0].content

    async def test_invalid_json(self, client):
        r = await client.post("/chat", content=b"{not json", headers={"Content-Type": "application/json"})
        assert r.status_code == 400

    @pytest.mark.parametrize("body", [{"text": "hi"}, {"user_id": "u1"}, {"user_id": "", "text": "hi"}])
    async def test_missing_fields(self, client, body):
        r = await client.post("/chat", json=body)
        assert r.status_code == 400
