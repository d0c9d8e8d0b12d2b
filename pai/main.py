"""P&AI Bot entry point.

Initializes all components and starts the server:
  Settings -> Router -> Store -> Event logger -> Engine -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from starlette.applications import Starlette

from pai.agent.engine import Engine
from pai.agent.store import MemoryStore
from pai.agent.store_sql import SQLStore
from pai.ai.providers import (
    AnthropicProvider,
    GoogleProvider,
    OllamaProvider,
    OpenAIProvider,
    OpenRouterProvider,
    deepseek_provider,
)
from pai.ai.router import Router
from pai.config import Settings
from pai.events import BackgroundEventLogger, MemoryEventLogger, SQLEventLogger
from pai.storage.database import Database
from pai.storage.migrator import run_migrations

logger = logging.getLogger(__name__)


def build_provider_client(settings: Settings) -> httpx.AsyncClient:
    """One pooled client shared by every provider adapter."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=settings.ai_timeout_connect,
            read=settings.ai_timeout_read,
            write=10,
            pool=10,
        ),
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )


def setup_router(settings: Settings, http_client: httpx.AsyncClient | None = None) -> Router:
    """Register every configured provider. Registration order is fallback order."""
    router = Router()
    if settings.ai_openai_api_key:
        router.register("openai", OpenAIProvider(settings.ai_openai_api_key, http_client=http_client))
    if settings.ai_anthropic_api_key:
        router.register("anthropic", AnthropicProvider(settings.ai_anthropic_api_key, http_client=http_client))
    if settings.ai_deepseek_api_key:
        router.register("deepseek", deepseek_provider(settings.ai_deepseek_api_key, http_client=http_client))
    if settings.ai_google_api_key:
        router.register("google", GoogleProvider(settings.ai_google_api_key, http_client=http_client))
    if settings.ai_ollama_enabled:
        router.register("ollama", OllamaProvider(settings.ai_ollama_url, http_client=http_client))
    if settings.ai_openrouter_api_key:
        router.register("openrouter", OpenRouterProvider(settings.ai_openrouter_api_key, http_client=http_client))
    return router


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    1. Router - configured AI providers over one shared httpx client
    2. Store - in-memory, or Postgres with migrations applied
    3. Event logger - background writer in front of the event sink
    4. Engine
    """
    provider_http = build_provider_client(settings)
    router = setup_router(settings, provider_http)

    database = None
    if settings.store_backend == "postgres":
        database = Database(settings)
        await database.connect()
        await run_migrations(database.engine)
        store = SQLStore(database, tenant_slug=settings.tenant_slug)
        await store.connect()
        sink = SQLEventLogger(database)
    else:
        store = MemoryStore()
        sink = MemoryEventLogger()

    events = BackgroundEventLogger(sink, max_queue=settings.event_queue_size)
    await events.start()

    engine = Engine(router, store, events=events, settings=settings)

    return {
        "provider_http": provider_http,
        "router": router,
        "database": database,
        "store": store,
        "events": events,
        "engine": engine,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down P&AI Bot...")

    events = components.get("events")
    if events:
        await events.stop()

    router = components.get("router")
    if router:
        await router.aclose()

    provider_http = components.get("provider_http")
    if provider_http:
        await provider_http.aclose()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("P&AI Bot shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app; components are created in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components
        logger.info(
            "P&AI Bot started: providers=%s store=%s",
            components["router"].provider_names(),
            settings.store_backend,
        )
        yield
        await shutdown_components(components)

    from pai.api.rest import create_app

    return create_app(
        engine=_lazy_component(components, "engine"),
        router=_lazy_component(components, "router"),
        lifespan=lifespan,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Lets create_app() receive component references before the lifespan
    has initialized them.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized; lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point: parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if not settings.has_ai_provider:
        logger.error("No AI providers configured; set at least one LEARN_AI_* key or LEARN_AI_OLLAMA_ENABLED")
        raise SystemExit(1)

    logger.info("Starting P&AI Bot on %s:%d (store=%s)", settings.host, settings.port, settings.store_backend)

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
