"""Transport executor: one HTTP exchange with bounded retries.

The executor owns the HTTP client, the retry/backoff loop, and the mapping
of transport failures into the error taxonomy. Every suspension point runs
under the caller's ``CallScope`` so a deadline or caller abort interrupts
sends, backoff sleeps, and error-body reads alike.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Any

import httpx

from conduit._logging import resolve_logger
from conduit.cancellation import CallScope
from conduit.errors import (
    AuthorizationError,
    GatewayError,
    NetworkError,
    ServerError,
    ValidationError,
    classify_http_error,
)
from conduit.payload import build_headers, endpoint_url
from conduit.retry import RetryPolicy, compute_backoff_delay

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from conduit._logging import LoggerLike
    from conduit.cancellation import CancellationToken

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT_S = 60.0
DEFAULT_APP_TITLE = "conduit"


class TransportExecutor:
    """Issue ``POST /chat/completions`` with retries under a call scope."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        retry: RetryPolicy | None = None,
        app_title: str = DEFAULT_APP_TITLE,
        site_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        rand: Callable[[], float] | None = None,
        logger: LoggerLike | None = None,
    ) -> None:
        if not isinstance(api_key, str) or not api_key.strip():
            raise AuthorizationError(
                "API key is required and must be a non-empty string",
                hint="Set OPENROUTER_API_KEY or pass api_key=...",
            )
        if not isinstance(timeout_s, (int, float)) or not timeout_s > 0:
            raise ValidationError("Timeout must be a positive number")

        self._retry = retry if retry is not None else RetryPolicy()
        self._timeout_s = float(timeout_s)
        self._url = endpoint_url(base_url.strip() or DEFAULT_BASE_URL)
        self._headers = build_headers(
            api_key.strip(), app_title=app_title, site_url=(site_url or "").strip() or None
        )
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            transport=transport, timeout=httpx.Timeout(self._timeout_s)
        )
        self._sleep = sleep or asyncio.sleep
        self._rand = rand or random.random
        self._log = resolve_logger(logger, __name__)

    @property
    def url(self) -> str:
        """Resolved chat-completions endpoint."""
        return self._url

    @property
    def retry_policy(self) -> RetryPolicy:
        """Immutable retry policy for this executor."""
        return self._retry

    @property
    def timeout_s(self) -> float:
        """Per-call wall-clock budget in seconds."""
        return self._timeout_s

    def open_scope(self, signal: CancellationToken | None = None) -> CallScope:
        """Arm the call deadline; must be called once at call start."""
        return CallScope(timeout_s=self._timeout_s, signal=signal)

    async def send(self, body: bytes, *, scope: CallScope) -> httpx.Response:
        """Return a successful, fully-read response for a non-streaming call."""
        return await self._with_retries(body, scope=scope, stream=False)

    async def open_stream(self, body: bytes, *, scope: CallScope) -> httpx.Response:
        """Return a successful response whose body has not been read yet.

        The caller owns the response and must ``aclose()`` it.
        """
        return await self._with_retries(body, scope=scope, stream=True)

    async def aclose(self) -> None:
        """Close the HTTP client if this executor created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _send_once(self, body: bytes, *, stream: bool) -> httpx.Response:
        request = self._client.build_request(
            "POST", self._url, content=body, headers=self._headers
        )
        return await self._client.send(request, stream=stream)

    async def _with_retries(
        self, body: bytes, *, scope: CallScope, stream: bool
    ) -> httpx.Response:
        max_attempts = self._retry.max_attempts
        for attempt in range(max_attempts):
            self._log.debug("Gateway request attempt %d/%d", attempt + 1, max_attempts)
            try:
                response = await scope.run(self._send_once(body, stream=stream))
            except GatewayError:
                raise
            except (httpx.HTTPError, OSError) as exc:
                error: GatewayError = NetworkError(
                    "Network request failed",
                    details={"attempt": attempt + 1, "error": f"{type(exc).__name__}: {exc}"},
                )
                if not self._should_retry(error, attempt):
                    raise error from exc
            else:
                if response.is_success:
                    return response
                error = await self._read_error(response, attempt=attempt, scope=scope, stream=stream)
                if not self._should_retry(error, attempt):
                    raise error

            delay = compute_backoff_delay(
                self._retry,
                attempt=attempt,
                retry_after_s=error.retry_after_s,
                rand=self._rand,
            )
            self._log.warning(
                "Retrying after %.3fs (attempt %d/%d) kind=%s status=%s",
                delay,
                attempt + 1,
                max_attempts,
                error.kind.value,
                error.status_code,
            )
            await scope.run(self._sleep(delay))

        # Unreachable with a well-formed policy: every iteration returns or raises.
        raise ServerError("Max retries exceeded", details={"attempts": max_attempts})

    def _should_retry(self, error: GatewayError, attempt: int) -> bool:
        return error.retryable and attempt < self._retry.max_retries

    async def _read_error(
        self,
        response: httpx.Response,
        *,
        attempt: int,
        scope: CallScope,
        stream: bool,
    ) -> GatewayError:
        """Read the error body (streams are closed) and classify it."""
        try:
            if stream:
                await scope.run(response.aread())
            body = _error_body(response)
        except (httpx.HTTPError, OSError):
            body = {"message": "Unknown error"}
        finally:
            if stream:
                await response.aclose()
        return classify_http_error(
            response.status_code, body, attempt=attempt, headers=response.headers
        )


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text or "Unknown error"}
