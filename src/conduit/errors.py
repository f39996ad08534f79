"""Exception hierarchy for conduit.

Every failure surfaced to a caller is a ``GatewayError`` tagged with one of
the closed set of ``ErrorKind`` values. Retry eligibility is attached to the
kind, so the transport loop never relies on brittle substring matching of
messages.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping


class ErrorKind(str, Enum):
    """Classified failure kinds."""

    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    VALIDATION = "validation"
    CONTEXT_LENGTH = "context_length"
    CONTENT_FILTER = "content_filter"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE = "parse"
    SERVER_ERROR = "server_error"

    @property
    def retryable(self) -> bool:
        """Whether the transport loop may retry a failure of this kind."""
        return self in _RETRYABLE_KINDS


_RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.RATE_LIMIT,
        ErrorKind.TIMEOUT,
        ErrorKind.NETWORK,
        ErrorKind.SERVER_ERROR,
    }
)


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    kind: ErrorKind = ErrorKind.SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        hint: str | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details
        self.hint = hint
        self.retry_after_s = retry_after_s

    @property
    def retryable(self) -> bool:
        """Static retry eligibility of this error's kind."""
        return self.kind.retryable

    def __repr__(self) -> str:
        """Return a compact representation for logs."""
        status = f", status_code={self.status_code}" if self.status_code else ""
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}{status})"


class AuthorizationError(GatewayError):
    """Missing or rejected credential (HTTP 401/403)."""

    kind = ErrorKind.AUTHORIZATION


class RateLimitError(GatewayError):
    """Rate limit exceeded (HTTP 429)."""

    kind = ErrorKind.RATE_LIMIT


class ValidationError(GatewayError):
    """Malformed request, rejected locally or by the provider (HTTP 400)."""

    kind = ErrorKind.VALIDATION


class ContextLengthError(ValidationError):
    """Prompt exceeded the model's context or token limit."""

    kind = ErrorKind.CONTEXT_LENGTH


class ContentFilterError(ValidationError):
    """Provider refused the request on content-filter grounds."""

    kind = ErrorKind.CONTENT_FILTER


class GatewayTimeoutError(GatewayError):
    """Call deadline exceeded or the caller aborted the call."""

    kind = ErrorKind.TIMEOUT


class NetworkError(GatewayError):
    """Connection-level failure with no HTTP response."""

    kind = ErrorKind.NETWORK


class ParseError(GatewayError):
    """Response body was not valid JSON or had an unexpected shape."""

    kind = ErrorKind.PARSE


class ServerError(GatewayError):
    """Provider-side failure (HTTP 5xx)."""

    kind = ErrorKind.SERVER_ERROR


# =============================================================================
# HTTP status classification
# =============================================================================


def _provider_message(body: Any) -> str | None:
    """Extract the provider's error message from an error body."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def parse_retry_after(headers: Mapping[str, str] | None) -> float | None:
    """Parse a ``Retry-After`` header given in seconds.

    HTTP-date values are ignored; only non-negative numbers are honored.
    """
    if not headers:
        return None
    raw = headers.get("Retry-After") or headers.get("retry-after")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def classify_http_error(
    status: int,
    body: Any,
    *,
    attempt: int,
    headers: Mapping[str, str] | None = None,
) -> GatewayError:
    """Map a non-2xx provider response into a classified ``GatewayError``.

    Args:
        status: HTTP status code of the response.
        body: Decoded JSON body, or ``{"message": <text>}`` when not JSON.
        attempt: Zero-based attempt index the response belongs to.
        headers: Response headers, used for ``Retry-After`` on 429.

    Returns:
        The classified error; callers decide whether to raise or retry it.
    """
    details: dict[str, Any] = {"status": status, "attempt": attempt + 1, "body": body}

    if status in (401, 403):
        message = "Invalid API key" if status == 401 else "Forbidden"
        return AuthorizationError(
            message,
            status_code=status,
            details=details,
            hint="Check the API key (OPENROUTER_API_KEY) and its permissions.",
        )

    if status == 429:
        return RateLimitError(
            "Rate limit exceeded",
            status_code=status,
            details=details,
            retry_after_s=parse_retry_after(headers),
        )

    if status == 400:
        message = _provider_message(body) or "Bad request"
        lowered = message.lower()
        if "context" in lowered or "token" in lowered:
            return ContextLengthError(
                "Context length exceeded",
                status_code=status,
                details=details,
                hint="Shorten the messages or lower max_tokens.",
            )
        if "filter" in lowered:
            return ContentFilterError(
                "Content was filtered", status_code=status, details=details
            )
        return ValidationError(message, status_code=status, details=details)

    if status >= 500:
        return ServerError("Provider server error", status_code=status, details=details)

    return ValidationError(f"HTTP {status}", status_code=status, details=details)

