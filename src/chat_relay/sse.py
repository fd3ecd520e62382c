"""Server-Sent Events decoding for streamed chat completions.

The response body arrives as byte fragments whose boundaries have nothing to
do with SSE lines: one fragment may hold several lines, and one line may be
spread over several fragments (even in the middle of a multi-byte UTF-8
character). ``SSEFrameDecoder`` keeps the unterminated tail of the text
between fragments so every ``data:`` line is seen exactly once and whole.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections.abc import AsyncIterable, AsyncIterator

from pydantic import ValidationError

from chat_relay.types import NormalizedUpdate, StreamChunk

DONE_SENTINEL = "[DONE]"
_DATA_FIELD = "data:"
_LINE_END = re.compile(r"\r\n|\r|\n")

_logger = logging.getLogger(__name__)


def normalize_chunk(chunk: StreamChunk) -> NormalizedUpdate | None:
    """Map the first choice's delta to an update; ``None`` when there are no choices."""
    if not chunk.choices:
        return None
    delta = chunk.choices[0].delta
    # absent and "" both mean nothing new this tick
    return NormalizedUpdate(
        content_delta=delta.content or None,
        reasoning_delta=delta.reasoning_text or None,
    )


def _data_payload(line: str) -> str | None:
    if not line.startswith(_DATA_FIELD):
        return None
    value = line[len(_DATA_FIELD) :]
    if value.startswith(" "):
        value = value[1:]
    return value


class SSEFrameDecoder:
    """Incremental decoder for one stream; create a new instance per response."""

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        # unterminated text, kept as pieces so a long line costs one join
        self._pending: list[str] = []
        self._held_cr = False
        self._finished = False
        self._saw_terminal = False

    @property
    def finished(self) -> bool:
        """True once the terminal sentinel was seen or the input was flushed."""
        return self._finished

    @property
    def saw_terminal(self) -> bool:
        return self._saw_terminal

    def feed(self, fragment: bytes) -> list[NormalizedUpdate]:
        """Consume one fragment and return the updates for the lines it completed."""
        if self._finished:
            if fragment:
                _logger.debug("Ignoring %d bytes after end of stream", len(fragment))
            return []
        text = self._text.decode(fragment)
        if not text:
            return []
        self._pending.append(text)
        if not self._held_cr and "\n" not in text and "\r" not in text:
            return []
        return self._process(self._take_lines(final=False))

    def flush(self) -> list[NormalizedUpdate]:
        """Handle end of input: a final line without a newline is still processed."""
        if self._finished:
            return []
        self._pending.append(self._text.decode(b"", final=True))
        updates = self._process(self._take_lines(final=True))
        self._finished = True
        return updates

    def _take_lines(self, *, final: bool) -> list[str]:
        buffer = "".join(self._pending)
        lines: list[str] = []
        start = 0
        for match in _LINE_END.finditer(buffer):
            # a trailing CR may be the first half of CRLF split across fragments
            if not final and match.group() == "\r" and match.end() == len(buffer):
                break
            lines.append(buffer[start : match.start()])
            start = match.end()
        rest = buffer[start:]
        if final and rest:
            lines.append(rest)
            rest = ""
        self._pending = [rest] if rest else []
        self._held_cr = rest.endswith("\r")
        return lines

    def _process(self, lines: list[str]) -> list[NormalizedUpdate]:
        updates: list[NormalizedUpdate] = []
        for line in lines:
            payload = _data_payload(line)
            if payload is None:
                continue
            if payload.strip() == DONE_SENTINEL:
                updates.append(NormalizedUpdate.terminal())
                self._finished = True
                self._saw_terminal = True
                self._pending = []
                self._held_cr = False
                break
            update = self._parse(payload)
            if update is not None:
                updates.append(update)
        return updates

    @staticmethod
    def _parse(payload: str) -> NormalizedUpdate | None:
        try:
            chunk = StreamChunk.model_validate_json(payload)
        except ValidationError:
            _logger.debug("Skipping malformed streaming chunk: %s", payload)
            return None
        return normalize_chunk(chunk)


async def decode_stream(fragments: AsyncIterable[bytes]) -> AsyncIterator[NormalizedUpdate]:
    """Yield normalized updates for a byte stream, stopping after ``[DONE]``.

    Errors raised while reading ``fragments`` propagate unchanged; updates
    already yielded are not retracted.
    """
    decoder = SSEFrameDecoder()
    async for fragment in fragments:
        for update in decoder.feed(fragment):
            yield update
        if decoder.finished:
            return
    for update in decoder.flush():
        yield update
