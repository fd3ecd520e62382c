"""Async entry points used by the hosting application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

from chat_relay.config import GatewaySettings
from chat_relay.request import build_request
from chat_relay.sinks import EventSink
from chat_relay.sse import DONE_SENTINEL, decode_stream
from chat_relay.transport import ChatTransport
from chat_relay.types import CompletionResponse, Message, NormalizedUpdate, StreamResult


class ChatGateway:
    """Relays chat completions in blocking or streaming mode.

    Holds no per-call state, so one instance can serve concurrent calls.
    """

    _logger = logging.getLogger(__name__)

    def __init__(self, *, transport: ChatTransport | None = None) -> None:
        self._transport = transport or ChatTransport()

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> ChatGateway:
        return cls(transport=ChatTransport(timeout_s=settings.timeout_s))

    async def complete_blocking(
        self,
        base_url: str,
        api_key: str,
        model: str,
        messages: Sequence[Message],
        reasoning_enabled: bool = False,
    ) -> CompletionResponse:
        """Send one request and return the decoded response."""
        request = build_request(
            model, messages, stream=False, reasoning_enabled=reasoning_enabled
        )
        return await self._transport.send(base_url, api_key, request)

    def stream(
        self,
        base_url: str,
        api_key: str,
        model: str,
        messages: Sequence[Message],
        reasoning_enabled: bool = False,
    ) -> AsyncIterator[NormalizedUpdate]:
        """Return an async iterator of normalized updates.

        The connection is released when iteration ends or the iterator is closed,
        which is how a caller cancels a stream.
        """

        async def _gen() -> AsyncIterator[NormalizedUpdate]:
            request = build_request(
                model, messages, stream=True, reasoning_enabled=reasoning_enabled
            )
            async with await self._transport.open_stream(base_url, api_key, request) as body:
                async with aclosing(decode_stream(body)) as updates:
                    async for update in updates:
                        yield update

        return _gen()

    async def complete_streaming(
        self,
        base_url: str,
        api_key: str,
        model: str,
        messages: Sequence[Message],
        reasoning_enabled: bool,
        sink: EventSink,
    ) -> StreamResult:
        """Deliver every update to ``sink`` and report how the stream ended."""
        delivered = 0
        failures = 0
        completed = False

        async with aclosing(
            self.stream(base_url, api_key, model, messages, reasoning_enabled)
        ) as updates:
            async for update in updates:
                if update.is_terminal:
                    completed = True
                if self._deliver(sink, update):
                    delivered += 1
                else:
                    failures += 1

        if not completed:
            self._logger.warning(
                "Stream ended without %s after %d updates", DONE_SENTINEL, delivered
            )
        return StreamResult(
            completed=completed, updates_delivered=delivered, sink_failures=failures
        )

    def _deliver(self, sink: EventSink, update: NormalizedUpdate) -> bool:
        try:
            sink.notify(update)
        except Exception:
            # fire-and-forget: a failing sink never aborts the stream
            self._logger.warning("Event sink rejected update %r", update, exc_info=True)
            return False
        return True
