"""Outbound request construction."""

from __future__ import annotations

from collections.abc import Sequence

from chat_relay.types import CompletionRequest, Message, ThinkingMode


def build_request(
    model: str,
    messages: Sequence[Message],
    *,
    stream: bool,
    reasoning_enabled: bool,
) -> CompletionRequest:
    """Assemble a request; the thinking mode is always set explicitly.

    Empty ``model`` or ``messages`` are passed through untouched and left for
    the remote API to reject.
    """
    thinking = ThinkingMode.ENABLED if reasoning_enabled else ThinkingMode.DISABLED
    return CompletionRequest(
        model=model,
        messages=list(messages),
        stream=stream,
        thinking_mode=thinking,
    )
