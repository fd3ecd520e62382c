"""Chat completion relay with SSE streaming support."""

from .client import ChatGateway
from .config import GatewaySettings
from .errors import ApiError, ChatRelayError, DecodeError, SinkRefused, TransportError
from .request import build_request
from .sinks import AccumulatingSink, CallbackSink, EventSink, QueueSink
from .sse import SSEFrameDecoder, decode_stream, normalize_chunk
from .transport import ChatTransport, ResponseStream
from .types import (
    CompletionRequest,
    CompletionResponse,
    ContentPart,
    Message,
    NormalizedUpdate,
    StreamChunk,
    StreamResult,
    ThinkingMode,
)

__all__ = [
    "ChatGateway",
    "GatewaySettings",
    "ChatTransport",
    "ResponseStream",
    "build_request",
    "SSEFrameDecoder",
    "decode_stream",
    "normalize_chunk",
    "EventSink",
    "CallbackSink",
    "QueueSink",
    "AccumulatingSink",
    "Message",
    "ContentPart",
    "CompletionRequest",
    "CompletionResponse",
    "StreamChunk",
    "NormalizedUpdate",
    "StreamResult",
    "ThinkingMode",
    "ChatRelayError",
    "TransportError",
    "ApiError",
    "DecodeError",
    "SinkRefused",
]
