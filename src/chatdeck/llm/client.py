"""Streaming chat-completion client.

Created: 2026-10-19

Issues one OpenAI-compatible ``/v1/chat/completions`` request per
invocation and yields the assistant reply as ordered text deltas. Any
forwarder in front of the inference engine is transparent as long as it
relays the same protocol.

Lifecycle of one invocation (``CompletionStream``):
    IDLE -> SENDING -> STREAMING -> COMPLETED | FAILED
A stream is not restartable; call ``stream()`` again for a new request.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from chatdeck.config import Settings
from chatdeck.errors import CompletionError, ProtocolError, RequestError
from chatdeck.llm.frames import DoneFrame, LineDecoder, ValidFrame, classify_line
from chatdeck.sessions.models import Message, Role

logger = logging.getLogger(__name__)

# Statuses that can never carry a streaming body
_BODYLESS_STATUSES = (204, 205)


class StreamState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TextDelta:
    """One incremental piece of assistant text."""

    text: str


class CompletionClientProtocol(Protocol):
    """Anything that can turn a conversation into a stream of deltas."""

    def stream(
        self,
        history: Sequence[Message],
        new_user_message: Message,
        system_context: str,
    ) -> AsyncIterable[TextDelta]: ...


def build_messages(
    history: Sequence[Message],
    new_user_message: Message,
    system_context: str,
) -> list[dict[str, str]]:
    """System message, then prior history in order, then the new user turn."""
    return [
        {"role": Role.SYSTEM.value, "content": system_context},
        *(m.to_wire() for m in history),
        new_user_message.to_wire(),
    ]


class CompletionStream:
    """A single, non-restartable completion invocation.

    Iterate it with ``async for``; iteration ends after ``[DONE]`` or when
    the transport reports end of body, whichever comes first. Failures
    raise ``RequestError`` or ``ProtocolError``.
    """

    def __init__(
        self,
        settings: Settings,
        payload: dict[str, Any],
        http_client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings
        self.payload = payload
        self._http_client = http_client
        self.state = StreamState.IDLE

    def __aiter__(self) -> AsyncIterator[TextDelta]:
        if self.state is not StreamState.IDLE:
            raise RuntimeError("CompletionStream can only be iterated once")
        self.state = StreamState.SENDING
        return self._run()

    def _client(self) -> contextlib.AbstractAsyncContextManager[httpx.AsyncClient]:
        if self._http_client is not None:
            return contextlib.nullcontext(self._http_client)
        return httpx.AsyncClient(timeout=self.settings.request_timeout)

    async def _run(self) -> AsyncIterator[TextDelta]:
        try:
            async with contextlib.aclosing(self._deltas()) as deltas:
                async for delta in deltas:
                    yield delta
        except CompletionError:
            self.state = StreamState.FAILED
            raise
        self.state = StreamState.COMPLETED

    async def _deltas(self) -> AsyncIterator[TextDelta]:
        url = self.settings.endpoint_url
        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=self.payload) as response:
                    self._check_response(response)
                    self.state = StreamState.STREAMING
                    async for delta in self._read_body(response):
                        yield delta
        except httpx.RemoteProtocolError as e:
            raise ProtocolError(f"Broken stream from {url}: {e}") from e
        except httpx.HTTPError as e:
            raise RequestError(f"Could not reach {url}: {e}") from e

    def _check_response(self, response: httpx.Response) -> None:
        if not response.is_success:
            raise RequestError(
                f"Completion endpoint returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if (
            response.status_code in _BODYLESS_STATUSES
            or response.headers.get("content-length") == "0"
        ):
            raise ProtocolError(
                "Completion endpoint returned no stream body",
                status_code=response.status_code,
            )

    async def _read_body(self, response: httpx.Response) -> AsyncIterator[TextDelta]:
        decoder = LineDecoder()
        skipped = 0

        async for chunk in response.aiter_bytes():
            for line in decoder.feed(chunk):
                frame = classify_line(line)
                if isinstance(frame, DoneFrame):
                    return
                if isinstance(frame, ValidFrame):
                    yield TextDelta(frame.text)
                elif frame is not None:
                    skipped += 1

        # Transport EOF: the last line may have had no terminator
        for line in decoder.flush():
            frame = classify_line(line)
            if isinstance(frame, ValidFrame):
                yield TextDelta(frame.text)
            elif frame is not None and not isinstance(frame, DoneFrame):
                skipped += 1

        logger.debug(f"Stream ended at transport EOF ({skipped} frames skipped)")


class StreamingCompletionClient:
    """Streaming client for an OpenAI-compatible completions endpoint.

    Args:
        settings: Endpoint, model and sampling parameters.
        http_client: Optional shared ``httpx.AsyncClient``. It is used as-is
            and never closed here. Without one, each invocation opens and
            closes its own client.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.http_client = http_client

    def build_payload(
        self,
        history: Sequence[Message],
        new_user_message: Message,
        system_context: str,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.settings.model,
            "stream": True,
            "messages": build_messages(history, new_user_message, system_context),
        }
        if self.settings.temperature is not None:
            payload["temperature"] = self.settings.temperature
        if self.settings.max_tokens is not None:
            payload["max_tokens"] = self.settings.max_tokens
        return payload

    def stream(
        self,
        history: Sequence[Message],
        new_user_message: Message,
        system_context: str,
    ) -> CompletionStream:
        payload = self.build_payload(history, new_user_message, system_context)
        return CompletionStream(self.settings, payload, self.http_client)
