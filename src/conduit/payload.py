"""Wire payload construction for ``POST {base_url}/chat/completions``.

Everything here is a pure function of the request and the client defaults,
so identical inputs always serialize to identical bytes.
"""

from __future__ import annotations

from copy import deepcopy
import json
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from conduit.errors import ValidationError
from conduit.models import ModelParams

if TYPE_CHECKING:
    from conduit.models import ChatRequest


def endpoint_url(base_url: str) -> str:
    """Return the chat-completions endpoint for *base_url*."""
    return f"{base_url.rstrip('/')}/chat/completions"


def build_payload(
    request: ChatRequest,
    *,
    default_model: str | None,
    default_params: ModelParams | None,
    stream: bool,
) -> dict[str, Any]:
    """Merge defaults with per-call overrides into the provider payload.

    Params merge field-by-field: a field set on the request replaces the
    default for that field only. Unset fields are omitted rather than sent as
    null, because the provider treats presence as an explicit override.
    """
    params = (default_params or ModelParams()).merged(request.params)

    payload: dict[str, Any] = {
        "model": request.model or default_model,
        "messages": [m.to_wire() for m in request.messages],
        "stream": stream,
    }
    payload.update(params.to_wire())
    if request.response_format is not None:
        payload["response_format"] = request.response_format.to_wire()
    return payload


def to_strict_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Normalize a generated JSON schema for strict structured output.

    Ensures that for all 'object' types:
    1. additionalProperties is False
    2. All defined properties are listed in 'required'

    Only applied to schemas derived from Pydantic models; caller-supplied
    dict schemas are sent verbatim.
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        updated = {key: walk(value) for key, value in node.items()}
        if updated.get("type") == "object" or "properties" in updated:
            properties = updated.get("properties", {})
            if isinstance(properties, dict):
                updated["additionalProperties"] = False
                if "required" not in updated:
                    updated["required"] = list(properties.keys())
        return updated

    result = walk(normalized)
    if not isinstance(result, dict):
        raise ValidationError("Invalid response schema: expected object schema")
    return result


def resolve_schema(schema: dict[str, Any] | type[BaseModel]) -> dict[str, Any]:
    """Return the JSON schema for a dict or a Pydantic model class."""
    if isinstance(schema, dict):
        return schema
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        return to_strict_schema(schema.model_json_schema())
    raise ValidationError(
        "schema must be a JSON schema dict or a Pydantic model class",
        hint="Pass a dict following JSON Schema or a BaseModel subclass.",
    )


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """Encode *payload* as the exact request body bytes."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def build_headers(api_key: str, *, app_title: str, site_url: str | None = None) -> dict[str, str]:
    """Return request headers; ``HTTP-Referer`` only when a site URL is set."""
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    if site_url:
        headers["HTTP-Referer"] = site_url
    headers["X-Title"] = app_title
    return headers
