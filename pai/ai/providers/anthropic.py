"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any

import httpx

from pai.ai.errors import ProviderConfigError, ProviderError
from pai.ai.providers.base import HTTPProvider
from pai.ai.schemas import CompletionRequest, CompletionResponse, Message, ModelInfo, Role

DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"

# Anthropic API version header
_API_VERSION = "2023-06-01"

_DEFAULT_MAX_TOKENS = 4096


def _content_blocks(message: Message) -> str | list[dict[str, Any]]:
    if not message.image_urls:
        return message.content
    blocks: list[dict[str, Any]] = [
        {"type": "image", "source": {"type": "url", "url": url}}
        for url in message.image_urls
    ]
    blocks.append({"type": "text", "text": message.content})
    return blocks


class AnthropicProvider(HTTPProvider):
    """``POST {base}/messages`` with x-api-key auth.

    System-role messages are lifted out of the message list into the
    top-level ``system`` field, which is where the API expects them.
    """

    name = "anthropic"
    default_base_url = DEFAULT_ANTHROPIC_BASE_URL
    default_model = "claude-sonnet-4-6"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        if not api_key:
            raise ProviderConfigError("anthropic API key is required")
        super().__init__(base_url=base_url, http_client=http_client, models=models)
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._api_key,
            "anthropic-version": _API_VERSION,
        }

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        system_parts: list[str] = []
        messages: list[dict[str, Any]] = []
        for m in request.messages:
            if m.role == Role.SYSTEM:
                system_parts.append(m.content)
                continue
            messages.append({"role": m.role, "content": _content_blocks(m)})

        payload: dict[str, Any] = {
            "model": self.resolve_model(request),
            "max_tokens": request.max_tokens or _DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature > 0:
            payload["temperature"] = request.temperature
        return payload

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        data = await self._post_json(
            f"{self.base_url}/messages", self.build_payload(request), headers=self._headers()
        )
        blocks = data.get("content") or []
        if not blocks:
            raise ProviderError(self.name, "anthropic returned no content")
        text = "".join(
            block.get("text", "")
            for block in blocks
            if block.get("type", "text") == "text"
        )
        if not text.strip():
            raise ProviderError(self.name, "empty content in response")
        usage = data.get("usage") or {}
        return CompletionResponse(
            content=text,
            model=data.get("model", ""),
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
        )

    def default_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("claude-sonnet-4-6", "Claude Sonnet 4.6", 200000, "Best for teaching"),
            ModelInfo("claude-haiku-4-5-20251001", "Claude Haiku 4.5", 200000, "Fast grading"),
        ]

    async def health_check(self) -> None:
        """1-token ping; Anthropic has no cheap unauthenticated list call."""
        await self.complete(
            CompletionRequest(messages=[Message(role=Role.USER, content="ping")], max_tokens=1)
        )
