"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: a scripted transport, a recording
sleep, and recording stream callbacks cover every gateway suite.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any

import httpx

from conduit import ChatMessage, ChatRequest, Config, GatewayClient, RetryPolicy
from conduit.models import StreamCallbacks

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from conduit.errors import GatewayError
    from conduit.models import ChatResponse

TEST_MODEL = "test/model"


@dataclass
class TransportSpy:
    """MockTransport handler that replays a script and records requests.

    Script items are ``httpx.Response`` objects, exceptions to raise, or
    callables taking the request. An exhausted script keeps returning 200.
    """

    script: list[httpx.Response | BaseException | Callable[[httpx.Request], Any]] = field(
        default_factory=list
    )
    requests: list[httpx.Request] = field(default_factory=list)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def payloads(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def __call__(self, request: httpx.Request) -> Any:
        self.requests.append(request)
        if not self.script:
            return completion()
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return item(request)


@dataclass
class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays without waiting."""

    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@dataclass
class CallbackRecorder:
    """Records every stream callback in firing order."""

    chunks: list[str] = field(default_factory=list)
    done: list[tuple[str, ChatResponse]] = field(default_factory=list)
    errors: list[GatewayError] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    on_chunk_hook: Callable[[str], None] | None = None

    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_chunk=self._on_chunk, on_done=self._on_done, on_error=self._on_error
        )

    def _on_chunk(self, chunk: str) -> None:
        self.chunks.append(chunk)
        self.events.append("chunk")
        if self.on_chunk_hook is not None:
            self.on_chunk_hook(chunk)

    def _on_done(self, content: str, response: ChatResponse) -> None:
        self.done.append((content, response))
        self.events.append("done")

    def _on_error(self, error: GatewayError) -> None:
        self.errors.append(error)
        self.events.append("error")


def completion(
    content: str = "ok",
    *,
    model: str | None = TEST_MODEL,
    finish_reason: str | None = "stop",
    response_id: str = "gen-1",
) -> httpx.Response:
    """Return a 200 chat-completions response."""
    body: dict[str, Any] = {
        "id": response_id,
        "choices": [{"message": {"role": "assistant", "content": content}, "finish_reason": finish_reason}],
    }
    if model is not None:
        body["model"] = model
    return httpx.Response(200, json=body)


def error_response(status: int, message: str | None = None, **headers: str) -> httpx.Response:
    """Return an OpenAI-style error response."""
    body = {"error": {"message": message or f"status {status}", "code": status}}
    return httpx.Response(status, json=body, headers=headers)


def sse_response(
    frames: list[bytes],
    *,
    hang_after: bool = False,
) -> httpx.Response:
    """Return a streaming 200 response delivering *frames* one read at a time.

    With ``hang_after`` the body never closes after the last frame.
    """

    async def body() -> AsyncIterator[bytes]:
        for frame in frames:
            await asyncio.sleep(0)
            yield frame
        if hang_after:
            await asyncio.Event().wait()

    return httpx.Response(
        200, content=body(), headers={"Content-Type": "text/event-stream"}
    )


def user_request(content: str = "Hello!", **kwargs: Any) -> ChatRequest:
    return ChatRequest(messages=[ChatMessage(role="user", content=content)], **kwargs)


def make_client(
    spy: TransportSpy,
    *,
    sleep: RecordingSleep | None = None,
    retry: RetryPolicy | None = None,
    rand: Callable[[], float] | None = None,
    **config_kwargs: Any,
) -> GatewayClient:
    config_kwargs.setdefault("api_key", "sk-test")
    config_kwargs.setdefault("default_model", TEST_MODEL)
    config = Config(
        retry=retry or RetryPolicy(max_retries=2, base_delay_s=0.5, max_delay_s=4.0),
        **config_kwargs,
    )
    return GatewayClient(
        config,
        transport=spy.transport(),
        sleep=sleep or RecordingSleep(),
        rand=rand,
    )
