"""Request validation before any network I/O.

A Pydantic schema wall mirrors the public dataclasses; failures are reported
as a single ``ValidationError`` listing every issue by path.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from conduit.errors import ValidationError

if TYPE_CHECKING:
    from conduit.models import ChatRequest, ModelParams

MAX_MESSAGE_CONTENT_LENGTH = 100_000
MAX_MESSAGES_COUNT = 100
MAX_MODEL_NAME_LENGTH = 200
MAX_SCHEMA_NAME_LENGTH = 100


class _MessageSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: Literal["system", "user", "assistant"]
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_CONTENT_LENGTH)


class _ParamsSchema(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    temperature: float | None = Field(default=None, ge=0, le=2)
    top_p: float | None = Field(default=None, ge=0, le=1)
    max_tokens: int | None = Field(default=None, ge=1, le=1_000_000)
    presence_penalty: float | None = Field(default=None, ge=-2, le=2)
    frequency_penalty: float | None = Field(default=None, ge=-2, le=2)
    stop: str | list[str] | None = None
    seed: int | None = None


class _SchemaSpecSchema(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=MAX_SCHEMA_NAME_LENGTH)
    schema_: dict[str, Any] = Field(alias="schema")
    strict: Literal[True]


class _RequestSchema(BaseModel):
    """Structural and business rules for a chat request."""

    messages: list[_MessageSchema] = Field(min_length=1, max_length=MAX_MESSAGES_COUNT)
    model: str | None = Field(default=None, min_length=1, max_length=MAX_MODEL_NAME_LENGTH)
    params: _ParamsSchema | None = None
    response_format: _SchemaSpecSchema | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("messages")
    @classmethod
    def check_roles(cls, v: list[_MessageSchema]) -> list[_MessageSchema]:
        """At least one user message, at most one system message."""
        if not any(m.role == "user" for m in v):
            raise ValueError("At least one message must have role 'user'")
        if sum(1 for m in v if m.role == "system") > 1:
            raise ValueError("At most one message can have role 'system'")
        return v


def _as_mapping(request: ChatRequest) -> dict[str, Any]:
    """Project the request onto plain data for the schema wall."""
    params = request.params
    spec = request.response_format
    return {
        "messages": [
            {"role": getattr(m, "role", None), "content": getattr(m, "content", None)}
            for m in (request.messages or [])
        ],
        "model": request.model,
        "params": _params_mapping(params) if params is not None else None,
        "response_format": (
            {"name": spec.name, "schema": spec.schema, "strict": spec.strict}
            if spec is not None
            else None
        ),
        "metadata": request.metadata,
    }


def _params_mapping(params: ModelParams) -> dict[str, Any]:
    data = asdict(params)
    # to_wire sends tuples as lists, so validate them the same way.
    if isinstance(data.get("stop"), tuple):
        data["stop"] = list(data["stop"])
    return data


def validate_request(request: ChatRequest, *, default_model: str | None) -> ChatRequest:
    """Return *request* unchanged, or raise ``ValidationError``.

    Args:
        request: The outgoing request.
        default_model: Client-wide default model, used when the request has none.

    Raises:
        ValidationError: With ``details["issues"]`` as ``{path, message}`` items.
    """
    try:
        _RequestSchema.model_validate(_as_mapping(request))
    except PydanticValidationError as e:
        issues = [
            {
                "path": ".".join(str(p) for p in err["loc"]),
                "message": err["msg"],
            }
            for err in e.errors()
        ]
        raise ValidationError(
            "Invalid request options",
            details={"issues": issues},
        ) from e

    if not request.model and not default_model:
        raise ValidationError(
            "Model must be specified either in request or as default",
            hint="Pass ChatRequest(model=...) or configure default_model.",
        )
    return request
