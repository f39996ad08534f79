"""Gateway client facade: chat, structured-JSON chat, and streaming chat.

All three operations validate first, then build the payload, then hand the
exchange to the transport executor. Failures reach the caller only as
``GatewayError`` instances; streaming calls receive them via ``on_error``.
"""

from __future__ import annotations

from dataclasses import replace
import time
from typing import TYPE_CHECKING, Any

from conduit._logging import resolve_logger
from conduit.config import Config
from conduit.errors import GatewayError
from conduit.models import ChatJsonResponse, ChatResponse, JsonSchemaSpec, ModelParams
from conduit.normalize import decode_json_response, normalize_response
from conduit.payload import build_payload, resolve_schema, serialize_payload
from conduit.sse import consume_stream, invoke_callback
from conduit.transport import TransportExecutor
from conduit.validation import validate_request

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType

    import httpx
    from pydantic import BaseModel

    from conduit._logging import LoggerLike
    from conduit.models import ChatRequest, StreamCallbacks


class GatewayClient:
    """Long-lived, stateless chat-completions client.

    Safe for concurrent use: calls share only the configured defaults.
    ``set_defaults`` is an administrative operation and is not synchronized
    with in-flight calls.

    Example:
        async with GatewayClient(Config.from_env()) as client:
            response = await client.chat(
                ChatRequest(messages=[ChatMessage(role="user", content="Hello!")])
            )
            print(response.content)
    """

    def __init__(
        self,
        config: Config,
        *,
        default_params: ModelParams | None = None,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: LoggerLike | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rand: Callable[[], float] | None = None,
    ) -> None:
        self._config = config
        self._default_model = config.default_model
        self._default_params = default_params or ModelParams()
        self._log = resolve_logger(logger, __name__)
        self._transport = TransportExecutor(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout_s=config.timeout_s,
            retry=config.retry,
            app_title=config.app_title,
            site_url=config.site_url,
            http_client=http_client,
            transport=transport,
            sleep=sleep,
            rand=rand,
            logger=self._log,
        )

    @property
    def config(self) -> Config:
        """Configuration the client was built with."""
        return self._config

    @property
    def default_model(self) -> str:
        """Model used when a request does not name one."""
        return self._default_model

    @property
    def default_params(self) -> ModelParams:
        """Params merged under every request's own params."""
        return self._default_params

    def set_defaults(self, model: str | None = None, params: ModelParams | None = None) -> None:
        """Update the default model and/or merge new default params field-by-field."""
        if model is not None:
            self._default_model = model
        if params is not None:
            self._default_params = self._default_params.merged(params)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Run a non-streaming chat completion.

        Raises:
            GatewayError: Classified failure; retryable kinds were already retried.
        """
        started = time.perf_counter()
        self._log.debug("Chat request started messages=%d", len(request.messages or []))
        try:
            response = await self._complete(request)
        except GatewayError as e:
            self._log_failure("Chat", e, started)
            raise
        self._log_success("Chat", response, started)
        return response

    async def chat_json(
        self,
        request: ChatRequest,
        schema_name: str,
        schema: dict[str, Any] | type[BaseModel],
    ) -> ChatJsonResponse[Any]:
        """Run a chat completion in strict structured-output mode.

        Args:
            request: The chat request; any ``response_format`` is replaced.
            schema_name: Name reported to the provider for the schema.
            schema: JSON schema dict (sent verbatim) or a Pydantic model class.

        Returns:
            ``ChatJsonResponse`` with the decoded JSON and the raw response.

        Raises:
            ParseError: If the returned content is not valid JSON.
            GatewayError: Any other classified failure.
        """
        started = time.perf_counter()
        self._log.debug("Chat JSON request started schema=%s", schema_name)
        try:
            spec = JsonSchemaSpec(name=schema_name, schema=resolve_schema(schema))
            response = await self._complete(replace(request, response_format=spec))
            result = decode_json_response(response)
        except GatewayError as e:
            self._log_failure("Chat JSON", e, started)
            raise
        self._log_success("Chat JSON", response, started)
        return result

    async def chat_stream(self, request: ChatRequest, callbacks: StreamCallbacks) -> None:
        """Run a streaming chat completion, reporting through *callbacks*.

        ``on_chunk`` fires once per content delta in wire order. Exactly one
        of ``on_done`` or ``on_error`` fires afterwards. Errors are raised
        instead only when no ``on_error`` callback is supplied. Exceptions
        raised by the callbacks themselves propagate unchanged.
        """
        started = time.perf_counter()
        self._log.debug("Chat stream started messages=%d", len(request.messages or []))
        try:
            scope = self._transport.open_scope(request.signal)
            validate_request(request, default_model=self._default_model)
            body = serialize_payload(self._payload(request, stream=True))
            http_response = await self._transport.open_stream(body, scope=scope)
            final = await consume_stream(
                http_response, scope=scope, on_chunk=callbacks.on_chunk, logger=self._log
            )
        except GatewayError as e:
            self._log_failure("Chat stream", e, started)
            if callbacks.on_error is None:
                raise
            await invoke_callback(callbacks.on_error, e)
            return
        self._log_success("Chat stream", final, started)
        await invoke_callback(callbacks.on_done, final.content, final)

    def render_payload(self, request: ChatRequest, *, stream: bool = False) -> bytes:
        """Return the exact request body this client would send for *request*."""
        validate_request(request, default_model=self._default_model)
        return serialize_payload(self._payload(request, stream=stream))

    async def aclose(self) -> None:
        """Release the underlying HTTP client if the gateway created it."""
        await self._transport.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _complete(self, request: ChatRequest) -> ChatResponse:
        scope = self._transport.open_scope(request.signal)
        validate_request(request, default_model=self._default_model)
        body = serialize_payload(self._payload(request, stream=False))
        http_response = await self._transport.send(body, scope=scope)
        return normalize_response(http_response)

    def _payload(self, request: ChatRequest, *, stream: bool) -> dict[str, Any]:
        return build_payload(
            request,
            default_model=self._default_model,
            default_params=self._default_params,
            stream=stream,
        )

    def _log_success(self, op: str, response: ChatResponse, started: float) -> None:
        self._log.info(
            "%s request completed model=%s finish_reason=%s duration_ms=%d",
            op,
            response.model,
            response.finish_reason,
            _elapsed_ms(started),
        )

    def _log_failure(self, op: str, error: GatewayError, started: float) -> None:
        self._log.error(
            "%s request failed kind=%s status=%s duration_ms=%d: %s",
            op,
            error.kind.value,
            error.status_code,
            _elapsed_ms(started),
            error.message,
        )


def create_gateway_client(
    *,
    default_params: ModelParams | None = None,
    logger: LoggerLike | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    **config_overrides: Any,
) -> GatewayClient:
    """Build a client from ``OPENROUTER_*`` environment variables.

    Raises:
        AuthorizationError: If ``OPENROUTER_API_KEY`` is not set.
    """
    config = Config.from_env(**config_overrides)
    return GatewayClient(
        config, default_params=default_params, logger=logger, transport=transport
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
