"""Event sinks receiving normalized updates from a streaming call."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from chat_relay.errors import SinkRefused
from chat_relay.types import NormalizedUpdate


class EventSink(ABC):
    """Boundary to the hosting application.

    ``notify`` is called synchronously, once per update, in arrival order.
    Exceptions raised here are logged by the caller and never stop the stream.
    """

    @abstractmethod
    def notify(self, update: NormalizedUpdate) -> None:
        raise NotImplementedError


class CallbackSink(EventSink):
    """Forwards each update to ``callback`` as a ``{content, reasoning_content, done}`` dict."""

    def __init__(self, callback: Callable[[dict[str, Any]], object]) -> None:
        self._callback = callback

    def notify(self, update: NormalizedUpdate) -> None:
        self._callback(update.to_event())


class QueueSink(EventSink):
    """Puts updates on an ``asyncio.Queue`` for another task to consume."""

    def __init__(self, queue: asyncio.Queue[NormalizedUpdate]) -> None:
        self._queue = queue

    def notify(self, update: NormalizedUpdate) -> None:
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull as exc:
            raise SinkRefused("queue is full") from exc


@dataclass(frozen=True)
class Snapshot:
    """Whole transcript received so far."""

    content: str
    reasoning_content: str | None
    done: bool


class AccumulatingSink(EventSink):
    """Keeps running totals and records a snapshot whenever they change.

    Useful for hosts that re-render the full answer instead of appending deltas.
    """

    def __init__(self) -> None:
        self.content = ""
        self.reasoning_content = ""
        self.done = False
        self.snapshots: list[Snapshot] = []

    def notify(self, update: NormalizedUpdate) -> None:
        changed = False
        if update.reasoning_delta:
            self.reasoning_content += update.reasoning_delta
            changed = True
        if update.content_delta:
            self.content += update.content_delta
            changed = True
        if update.is_terminal:
            self.done = True
        if changed or update.is_terminal:
            self.snapshots.append(
                Snapshot(
                    content=self.content,
                    reasoning_content=self.reasoning_content or None,
                    done=self.done,
                )
            )
