"""Shared HTTP plumbing for provider adapters.

Adapters subclass HTTPProvider and implement complete()/models()/
health_check(). The base owns the httpx client, turns transport failures
and non-2xx responses into ProviderError, and provides the degenerate
one-chunk stream_complete().
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from pai.ai.errors import ProviderError
from pai.ai.schemas import CompletionRequest, CompletionResponse, Message, ModelInfo, StreamChunk

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=60.0, write=10.0, pool=10.0)


def build_http_client(timeout: httpx.Timeout | None = None) -> httpx.AsyncClient:
    """Create the httpx client used by a provider when none is injected."""
    return httpx.AsyncClient(
        timeout=timeout or DEFAULT_TIMEOUT,
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    )


class HTTPProvider:
    """Base class for vendor adapters speaking JSON over HTTP."""

    name: str = "provider"
    default_base_url: str = ""
    default_model: str = ""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
        name: str | None = None,
    ) -> None:
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self._http = http_client or build_http_client()
        self._owns_http = http_client is None
        self._models = models
        if name:
            self.name = name

    # ------------------------------------------------------------------
    # Provider capability
    # ------------------------------------------------------------------

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        raise NotImplementedError

    async def stream_complete(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Emit the whole completion as one chunk (no incremental streaming)."""
        try:
            response = await self.complete(request)
        except Exception as e:
            yield StreamChunk(error=e, done=True)
            return
        yield StreamChunk(content=response.content, done=True)

    def models(self) -> list[ModelInfo]:
        if self._models is not None:
            return list(self._models)
        return self.default_models()

    def default_models(self) -> list[ModelInfo]:
        return []

    async def health_check(self) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def resolve_model(self, request: CompletionRequest) -> str:
        return request.model or self.default_model

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request; raise ProviderError on transport error or non-2xx."""
        try:
            response = await self._http.request(
                method, url, headers=headers, json=json, params=params
            )
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"send request: {e}") from e

        if not response.is_success:
            raise ProviderError(
                self.name,
                f"api error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(
            "POST", url, headers=headers, json=payload, params=params
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"unmarshal response: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError(self.name, "unexpected response shape")
        return data


# ----------------------------------------------------------------------
# OpenAI-compatible wire shape (shared by OpenAI, Ollama, OpenRouter)
# ----------------------------------------------------------------------


def openai_message(message: Message) -> dict[str, Any]:
    """Map a neutral message to an OpenAI chat message.

    Messages carrying image references use the content-part array form.
    """
    if not message.image_urls:
        return {"role": message.role, "content": message.content}
    parts: list[dict[str, Any]] = [{"type": "text", "text": message.content}]
    for url in message.image_urls:
        parts.append({"type": "image_url", "image_url": {"url": url}})
    return {"role": message.role, "content": parts}


def openai_payload(
    request: CompletionRequest, model: str, *, include_temperature: bool = True
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "model": model,
        "messages": [openai_message(m) for m in request.messages],
    }
    if request.max_tokens > 0:
        payload["max_tokens"] = request.max_tokens
    if include_temperature and request.temperature > 0:
        payload["temperature"] = request.temperature
    return payload


def parse_openai_response(provider: str, data: dict[str, Any]) -> CompletionResponse:
    choices = data.get("choices") or []
    if not choices:
        raise ProviderError(provider, "no choices in response")
    message = choices[0].get("message") or {}
    content = message.get("content") or ""
    if not content.strip():
        raise ProviderError(provider, "empty content in response")
    usage = data.get("usage") or {}
    return CompletionResponse(
        content=content,
        model=data.get("model", ""),
        input_tokens=int(usage.get("prompt_tokens") or 0),
        output_tokens=int(usage.get("completion_tokens") or 0),
    )
