"""Package specific exception hierarchy."""

from __future__ import annotations

import json


class ChatRelayError(Exception):
    """Base exception for chat_relay package."""


class TransportError(ChatRelayError):
    """Raised when the connection fails or drops while reading the body."""


class ApiError(ChatRelayError):
    """Raised when the remote API answers with a non-success status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API Error (status {status_code}): {body}")
        self.status_code = status_code
        self.body = body
        self.detail = _extract_detail(body)


class DecodeError(ChatRelayError):
    """Raised when a blocking response body does not match the expected schema."""


class SinkRefused(ChatRelayError):
    """Raised by an event sink that cannot accept an update right now."""


def _extract_detail(body: str) -> str | None:
    # OpenAI-style error envelope: {"error": {"message": "..."}}
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        return message if isinstance(message, str) else None
    if isinstance(error, str):
        return error
    return None
