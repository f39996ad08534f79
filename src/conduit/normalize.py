"""Response normalization and structured-JSON decoding."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from conduit.errors import ParseError
from conduit.models import ChatJsonResponse, ChatResponse

if TYPE_CHECKING:
    import httpx

#: Upper bound on offending content echoed back in a ParseError.
PARSE_SNIPPET_LIMIT = 500

UNKNOWN_MODEL = "unknown"


def normalize_response(response: httpx.Response) -> ChatResponse:
    """Map a successful provider response into a ``ChatResponse``.

    A missing model echo is not an error; it defaults to ``"unknown"``.

    Raises:
        ParseError: If the body is not a JSON object.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise ParseError(
            "Provider response is not valid JSON",
            status_code=response.status_code,
            details={"raw_content": response.text[:PARSE_SNIPPET_LIMIT], "error": str(e)},
        ) from e
    return normalize_payload(data)


def normalize_payload(data: Any) -> ChatResponse:
    """Normalize an already-decoded chat-completions body."""
    if not isinstance(data, dict):
        raise ParseError(
            "Provider response has an unexpected shape",
            details={"type": type(data).__name__},
        )

    choice = _first_choice(data)
    message = choice.get("message") if isinstance(choice.get("message"), dict) else {}
    content = message.get("content")
    finish_reason = choice.get("finish_reason")

    return ChatResponse(
        id=_str_or(data.get("id"), ""),
        model=_str_or(data.get("model"), UNKNOWN_MODEL),
        content=content if isinstance(content, str) else "",
        finish_reason=finish_reason if isinstance(finish_reason, str) and finish_reason else None,
        raw=data,
    )


def decode_json_response(response: ChatResponse) -> ChatJsonResponse[Any]:
    """Parse ``response.content`` as JSON.

    Schema conformance is delegated to the provider's strict mode; only
    JSON-parseability is checked here.

    Raises:
        ParseError: With at most ``PARSE_SNIPPET_LIMIT`` characters of the
            offending content in ``details["raw_content"]``.
    """
    try:
        parsed = json.loads(response.content)
    except ValueError as e:
        raise ParseError(
            "Failed to parse JSON response",
            details={
                "raw_content": response.content[:PARSE_SNIPPET_LIMIT],
                "error": str(e),
            },
        ) from e
    return ChatJsonResponse(parsed=parsed, raw=response)


def _first_choice(data: dict[str, Any]) -> dict[str, Any]:
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def _str_or(value: Any, default: str) -> str:
    return value if isinstance(value, str) and value else default
