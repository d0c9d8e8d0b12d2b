"""Vendor-neutral request/response types and the Provider protocol.

Every provider adapter translates these shapes to and from its own wire
format; nothing outside ``pai.ai.providers`` sees vendor JSON.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TaskType(StrEnum):
    """Classification carried on a request.

    Travels with the request but does not change the router's provider order.
    """

    TEACHING = "teaching"
    GRADING = "grading"
    NUDGE = "nudge"
    ANALYSIS = "analysis"


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""

    role: str
    content: str
    image_urls: tuple[str, ...] = ()


@dataclass
class CompletionRequest:
    messages: list[Message]
    model: str | None = None
    max_tokens: int = 0  # 0 = provider default
    temperature: float = 0.0  # 0 = provider default
    task: TaskType = TaskType.TEACHING


@dataclass
class CompletionResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    def __post_init__(self) -> None:
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts must be non-negative")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class StreamChunk:
    content: str = ""
    done: bool = False
    error: Exception | None = None


@dataclass
class ModelInfo:
    id: str
    name: str
    max_tokens: int
    description: str = ""


@runtime_checkable
class Provider(Protocol):
    """Capability every AI vendor adapter implements."""

    name: str

    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...

    def stream_complete(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]: ...

    def models(self) -> list[ModelInfo]: ...

    async def health_check(self) -> None: ...

    async def aclose(self) -> None: ...
