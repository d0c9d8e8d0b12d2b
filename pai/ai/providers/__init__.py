"""Vendor adapters implementing the Provider protocol."""

from pai.ai.providers.anthropic import AnthropicProvider
from pai.ai.providers.base import HTTPProvider
from pai.ai.providers.google import GoogleProvider
from pai.ai.providers.ollama import OllamaProvider
from pai.ai.providers.openai import OpenAIProvider, deepseek_provider
from pai.ai.providers.openrouter import OpenRouterProvider

__all__ = [
    "AnthropicProvider",
    "GoogleProvider",
    "HTTPProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "deepseek_provider",
]
