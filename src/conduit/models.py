"""Domain models for gateway requests and responses."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar

from conduit.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from conduit.cancellation import CancellationToken
    from conduit.errors import GatewayError

T = TypeVar("T")

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    """A single conversational turn, sent to the provider verbatim."""

    role: Role
    content: str

    def to_wire(self) -> dict[str, str]:
        """Return the provider message shape."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ModelParams:
    """Optional sampling knobs.

    ``None`` means unset: the field is omitted from the wire payload and the
    provider applies its own default.
    """

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop: str | list[str] | None = None
    seed: int | None = None

    def merged(self, overrides: ModelParams | None) -> ModelParams:
        """Return a copy where every field set in *overrides* wins."""
        if overrides is None:
            return self
        changes = {
            f.name: getattr(overrides, f.name)
            for f in fields(overrides)
            if getattr(overrides, f.name) is not None
        }
        return replace(self, **changes)

    def to_wire(self) -> dict[str, Any]:
        """Return only the explicitly set fields, in declaration order."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            out[f.name] = list(value) if isinstance(value, (list, tuple)) else value
        return out


@dataclass(frozen=True)
class JsonSchemaSpec:
    """Structured-output contract handed to the provider's strict mode."""

    name: str
    schema: dict[str, Any]
    #: Always True; strict mode is a hard provider contract, not a knob.
    strict: Literal[True] = True

    def __post_init__(self) -> None:
        """Refuse any attempt to weaken strict mode."""
        if self.strict is not True:
            raise ValidationError(
                "JsonSchemaSpec.strict must be True",
                hint="Structured output always runs in the provider's strict mode.",
            )

    def to_wire(self) -> dict[str, Any]:
        """Return the ``response_format`` directive."""
        return {
            "type": "json_schema",
            "json_schema": {
                "name": self.name,
                "strict": True,
                "schema": self.schema,
            },
        }


@dataclass(frozen=True)
class ChatRequest:
    """A single chat-completion call.

    ``metadata`` is caller-side bookkeeping and is never sent to the provider.
    """

    messages: list[ChatMessage]
    model: str | None = None
    params: ModelParams | None = None
    response_format: JsonSchemaSpec | None = None
    signal: CancellationToken | None = None
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class ChatResponse:
    """Normalized result of one call."""

    id: str
    model: str
    content: str
    finish_reason: str | None
    #: Untouched provider payload, kept for diagnostics.
    raw: Any = field(default=None, repr=False, compare=False)


@dataclass(frozen=True)
class ChatJsonResponse(Generic[T]):
    """Result of a structured-JSON call."""

    parsed: T
    raw: ChatResponse


@dataclass(frozen=True)
class StreamCallbacks:
    """Callbacks driven by a streaming call.

    Each may be a plain function or a coroutine function. ``on_done`` and
    ``on_error`` are mutually exclusive and fire at most once per call.
    """

    on_chunk: Callable[[str], Awaitable[None] | None] | None = None
    on_done: Callable[[str, ChatResponse], Awaitable[None] | None] | None = None
    on_error: Callable[[GatewayError], Awaitable[None] | None] | None = None
