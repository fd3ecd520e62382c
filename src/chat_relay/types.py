"""Request/response models exchanged with an OpenAI-compatible chat API."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ThinkingMode(str, Enum):
    """Explicit reasoning toggle sent with every request."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class ImageURL(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    url: str
    detail: str | None = None


class ContentPart(BaseModel):
    """One element of a multimodal message (text, image_url, ...)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    type: str
    text: str | None = None
    image_url: ImageURL | None = None


class Message(BaseModel):
    """Single chat message; content is plain text or an ordered list of parts."""

    model_config = ConfigDict(frozen=True)

    role: str
    content: str | list[ContentPart]

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {
            "role": self.role,
            "content": [part.model_dump(exclude_none=True) for part in self.content],
        }


class CompletionRequest(BaseModel):
    """Outbound request body; built once per call."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: list[Message]
    stream: bool
    thinking_mode: ThinkingMode

    def to_payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_wire() for m in self.messages],
            "stream": self.stream,
            "thinking": {"type": self.thinking_mode.value},
        }


class Usage(BaseModel):
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class ResponseMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str
    content: str
    reasoning_text: str | None = Field(default=None, alias="reasoning_content")


class Choice(BaseModel):
    index: int
    message: ResponseMessage
    finish_reason: str | None = None


class CompletionResponse(BaseModel):
    """Decoded blocking-mode response."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: int = Field(alias="created")
    model: str
    object_type: str | None = Field(default=None, alias="object")
    choices: list[Choice]
    usage: Usage | None = None


class StreamDelta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role: str | None = None
    content: str | None = None
    reasoning_text: str | None = Field(default=None, alias="reasoning_content")


class StreamChoice(BaseModel):
    index: int
    delta: StreamDelta
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    """Payload of one SSE ``data:`` line."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: int = Field(alias="created")
    model: str
    object_type: str | None = Field(default=None, alias="object")
    choices: list[StreamChoice]


class NormalizedUpdate(BaseModel):
    """One incremental change handed to the host application."""

    model_config = ConfigDict(frozen=True)

    content_delta: str | None = None
    reasoning_delta: str | None = None
    is_terminal: bool = False

    @classmethod
    def terminal(cls) -> NormalizedUpdate:
        return cls(is_terminal=True)

    def to_event(self) -> dict[str, Any]:
        """Return the host-facing payload ``{content, reasoning_content, done}``."""
        return {
            "content": self.content_delta,
            "reasoning_content": self.reasoning_delta,
            "done": self.is_terminal,
        }


@dataclass(frozen=True)
class StreamResult:
    """Outcome of a streaming call."""

    # False when the body ended before the terminal sentinel arrived
    completed: bool
    updates_delivered: int
    sink_failures: int = 0
