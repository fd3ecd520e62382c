"""HTTP transport for the chat completions endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from types import TracebackType

import httpx
from pydantic import ValidationError

from chat_relay.errors import ApiError, DecodeError, TransportError
from chat_relay.types import CompletionRequest, CompletionResponse

_CHAT_PATH = "/chat/completions"
_UNKNOWN_ERROR = "Unknown error"


def endpoint_url(base_url: str) -> str:
    return base_url.rstrip("/") + _CHAT_PATH


def auth_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }


class ResponseStream:
    """An open, not yet consumed response body.

    Iterating yields raw byte fragments as they arrive from the network.
    Use as an async context manager (or call ``aclose``) to release the
    connection, including when abandoning the stream early.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response) -> None:
        self._client = client
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for fragment in self._response.aiter_bytes():
                yield fragment
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(f"Failed to read chunk: {exc}") from exc

    async def aclose(self) -> None:
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()

    async def __aenter__(self) -> ResponseStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class ChatTransport:
    """Single-attempt HTTP client; every call opens and closes its own connection."""

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        # None disables httpx's default timeout: time limits are the caller's policy
        self._timeout = httpx.Timeout(timeout_s)
        self._transport = transport

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def send(
        self, base_url: str, api_key: str, request: CompletionRequest
    ) -> CompletionResponse:
        """POST a blocking request and decode the whole body."""
        url = endpoint_url(base_url)
        self._logger.debug("POST %s model=%s stream=%s", url, request.model, request.stream)

        async with self._new_client() as client:
            response = await self._dispatch(client, url, api_key, request)
            try:
                await response.aread()
            except (httpx.HTTPError, httpx.StreamError) as exc:
                raise TransportError(f"Failed to read response: {exc}") from exc
            finally:
                await response.aclose()

            try:
                return CompletionResponse.model_validate_json(response.content)
            except ValidationError as exc:
                raise DecodeError(f"Failed to parse response: {exc}") from exc

    async def open_stream(
        self, base_url: str, api_key: str, request: CompletionRequest
    ) -> ResponseStream:
        """POST a streaming request and return once the response headers arrive."""
        url = endpoint_url(base_url)
        self._logger.debug("POST %s model=%s stream=%s", url, request.model, request.stream)

        client = self._new_client()
        try:
            response = await self._dispatch(client, url, api_key, request)
        except BaseException:
            # includes cancellation while waiting for headers
            await client.aclose()
            raise
        return ResponseStream(client, response)

    async def _dispatch(
        self, client: httpx.AsyncClient, url: str, api_key: str, request: CompletionRequest
    ) -> httpx.Response:
        """Send the request and return a successful response with its body unread."""
        outbound = client.build_request(
            "POST", url, headers=auth_headers(api_key), json=request.to_payload()
        )
        try:
            response = await client.send(outbound, stream=True)
        except httpx.HTTPError as exc:
            raise TransportError(f"Failed to send request: {exc}") from exc

        if not response.is_success:
            try:
                body = await self._read_error_body(response)
            finally:
                await response.aclose()
            raise ApiError(response.status_code, body)

        return response

    @staticmethod
    async def _read_error_body(response: httpx.Response) -> str:
        try:
            await response.aread()
        except (httpx.HTTPError, httpx.StreamError):
            return _UNKNOWN_ERROR
        return response.text or response.reason_phrase
