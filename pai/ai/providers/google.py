"""Google Gemini generateContent adapter."""

from __future__ import annotations

from typing import Any

import httpx

from pai.ai.errors import ProviderError
from pai.ai.providers.base import HTTPProvider
from pai.ai.schemas import CompletionRequest, CompletionResponse, ModelInfo, Role

DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GoogleProvider(HTTPProvider):
    """``POST {base}/models/{model}:generateContent?key=...``.

    Gemini only knows the roles ``user`` and ``model``. Assistant turns are
    renamed; system messages are dropped from the content list.
    """

    name = "google"
    default_base_url = DEFAULT_GEMINI_BASE_URL
    default_model = "gemini-2.5-flash"

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        models: list[ModelInfo] | None = None,
    ) -> None:
        super().__init__(base_url=base_url, http_client=http_client, models=models)
        self._api_key = api_key

    def build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        contents: list[dict[str, Any]] = []
        for m in request.messages:
            if m.role == Role.SYSTEM:
                continue
            role = "model" if m.role == Role.ASSISTANT else m.role
            contents.append({"role": role, "parts": [{"text": m.content}]})

        payload: dict[str, Any] = {"contents": contents}
        config: dict[str, Any] = {}
        if request.max_tokens > 0:
            config["maxOutputTokens"] = request.max_tokens
        if request.temperature > 0:
            config["temperature"] = request.temperature
        if config:
            payload["generationConfig"] = config
        return payload

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        model = self.resolve_model(request)
        data = await self._post_json(
            f"{self.base_url}/models/{model}:generateContent",
            self.build_payload(request),
            headers={"Content-Type": "application/json"},
            params={"key": self._api_key},
        )
        candidates = data.get("candidates") or []
        parts = (candidates[0].get("content") or {}).get("parts") if candidates else None
        if not parts:
            raise ProviderError(self.name, "no content in response")
        text = parts[0].get("text") or ""
        if not text.strip():
            raise ProviderError(self.name, "empty content in response")
        usage = data.get("usageMetadata") or {}
        return CompletionResponse(
            content=text,
            model=model,
            input_tokens=int(usage.get("promptTokenCount") or 0),
            output_tokens=int(usage.get("candidatesTokenCount") or 0),
        )

    def default_models(self) -> list[ModelInfo]:
        return [
            ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro", 1048576, "Most capable Google model"),
            ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", 1048576, "Fast, affordable Google model"),
        ]

    async def health_check(self) -> None:
        try:
            await self._request("GET", f"{self.base_url}/models", params={"key": self._api_key})
        except ProviderError as e:
            raise ProviderError(self.name, f"health check failed: {e}", e.status_code) from e
