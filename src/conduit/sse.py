"""Server-Sent Events decoding for streaming chat completions.

``SseStreamDecoder`` is a pure, incremental parser: feed it raw bytes as the
transport delivers them and it returns the content deltas in wire order.
``consume_stream`` drives it from an ``httpx`` streaming response under a
call scope and fires the caller's chunk callback per delta.

Wire shape::

    data: {"id": "...", "model": "...", "choices": [{"delta": {"content": "ab"}}]}

    data: [DONE]
"""

from __future__ import annotations

import codecs
from enum import Enum
import inspect
import json
from typing import TYPE_CHECKING, Any

import httpx

from conduit._logging import resolve_logger
from conduit.errors import GatewayError, NetworkError
from conduit.models import ChatResponse
from conduit.normalize import UNKNOWN_MODEL

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from conduit._logging import LoggerLike
    from conduit.cancellation import CallScope

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data:"


class StreamState(str, Enum):
    """Decoder lifecycle."""

    READING = "reading"
    DONE = "done"
    ABORTED = "aborted"


class SseStreamDecoder:
    """Incremental decoder for one chat-completions event stream."""

    def __init__(self, *, logger: LoggerLike | None = None) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: list[str] = []
        self._id = ""
        self._model = ""
        self._finish_reason: str | None = None
        self._log = resolve_logger(logger, __name__)
        self.state = StreamState.READING

    @property
    def done(self) -> bool:
        """Whether the decoder reached a terminal state."""
        return self.state is not StreamState.READING

    @property
    def content(self) -> str:
        """Aggregated content so far."""
        return "".join(self._parts)

    def feed(self, data: bytes) -> list[str]:
        """Decode *data* and return the content deltas of every complete line.

        A trailing partial line stays buffered until the next call.
        """
        if self.done:
            return []
        self._buffer += self._utf8.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._process(lines)

    def close(self) -> list[str]:
        """Signal end of the byte stream; flush any buffered line."""
        if self.done:
            return []
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        deltas = self._process(tail.split("\n")) if tail else []
        self.state = StreamState.DONE
        return deltas

    def abort(self) -> None:
        """Mark the stream as aborted; later input is ignored."""
        if not self.done:
            self.state = StreamState.ABORTED

    def result(self) -> ChatResponse:
        """Synthesize the final response from the aggregate."""
        return ChatResponse(
            id=self._id,
            model=self._model or UNKNOWN_MODEL,
            content=self.content,
            finish_reason=self._finish_reason,
            raw={
                "id": self._id,
                "model": self._model,
                "finish_reason": self._finish_reason,
            },
        )

    def _process(self, lines: list[str]) -> list[str]:
        deltas: list[str] = []
        for line in lines:
            delta = self._handle_line(line.rstrip("\r"))
            if self.state is StreamState.DONE:
                break
            if delta:
                deltas.append(delta)
        return deltas

    def _handle_line(self, line: str) -> str | None:
        if not line.startswith(_DATA_PREFIX):
            return None
        data = line[len(_DATA_PREFIX) :]
        if data.startswith(" "):
            data = data[1:]
        if not data.strip():
            return None
        if data.strip() == DONE_SENTINEL:
            self.state = StreamState.DONE
            return None

        try:
            chunk = json.loads(data)
        except ValueError as e:
            self._log.warning("Failed to parse SSE data line: %s", e)
            return None
        if not isinstance(chunk, dict):
            self._log.warning("Ignoring non-object SSE payload: %r", data[:100])
            return None

        chunk_id = chunk.get("id")
        if not self._id and isinstance(chunk_id, str) and chunk_id:
            self._id = chunk_id
        chunk_model = chunk.get("model")
        if not self._model and isinstance(chunk_model, str) and chunk_model:
            self._model = chunk_model

        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        choice = choices[0]

        finish_reason = choice.get("finish_reason")
        if isinstance(finish_reason, str) and finish_reason:
            self._finish_reason = finish_reason

        delta = choice.get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str) and content:
            self._parts.append(content)
            return content
        return None


async def invoke_callback(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call *callback* with *args*, awaiting it when it returns an awaitable."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def _next_chunk(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def consume_stream(
    response: httpx.Response,
    *,
    scope: CallScope,
    on_chunk: Callable[[str], Awaitable[None] | None] | None = None,
    logger: LoggerLike | None = None,
) -> ChatResponse:
    """Read *response* to completion and return the aggregated result.

    Every read runs under *scope*. The response is closed on every exit
    path. No chunk callback fires once the scope has aborted.

    Raises:
        GatewayTimeoutError: Deadline exceeded or the caller aborted.
        NetworkError: The transport failed mid-stream.
    """
    decoder = SseStreamDecoder(logger=logger)
    chunks = response.aiter_bytes()
    try:
        while not decoder.done:
            data = await scope.run(_next_chunk(chunks))
            deltas = decoder.close() if data is None else decoder.feed(data)
            for delta in deltas:
                await invoke_callback(on_chunk, delta)
                scope.check()
        return decoder.result()
    except GatewayError:
        decoder.abort()
        raise
    except (httpx.HTTPError, OSError) as e:
        decoder.abort()
        raise NetworkError(
            "Stream interrupted",
            details={"error": f"{type(e).__name__}: {e}", "received_chars": len(decoder.content)},
        ) from e
    finally:
        await response.aclose()
