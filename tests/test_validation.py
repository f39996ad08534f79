"""Request validation: every rule fails before any network I/O."""

from __future__ import annotations

from typing import Any

import pytest

from conduit.errors import ValidationError
from conduit.models import ChatMessage, ChatRequest, JsonSchemaSpec, ModelParams
from conduit.validation import (
    MAX_MESSAGE_CONTENT_LENGTH,
    MAX_MESSAGES_COUNT,
    MAX_MODEL_NAME_LENGTH,
    MAX_SCHEMA_NAME_LENGTH,
    validate_request,
)

pytestmark = pytest.mark.unit

USER = ChatMessage(role="user", content="Hello!")
SYSTEM = ChatMessage(role="system", content="Be brief.")


def _issue_paths(err: ValidationError) -> list[str]:
    assert err.details is not None
    return [issue["path"] for issue in err.details["issues"]]


def _invalid(request: ChatRequest, default_model: str | None = "m") -> ValidationError:
    with pytest.raises(ValidationError) as exc:
        validate_request(request, default_model=default_model)
    return exc.value


def test_valid_request_is_returned_unchanged() -> None:
    request = ChatRequest(messages=[SYSTEM, USER], params=ModelParams(temperature=0.2))
    assert validate_request(request, default_model="m") is request


def test_empty_messages_rejected() -> None:
    err = _invalid(ChatRequest(messages=[]))
    assert err.message == "Invalid request options"
    assert _issue_paths(err) == ["messages"]


def test_too_many_messages_rejected() -> None:
    err = _invalid(ChatRequest(messages=[USER] * (MAX_MESSAGES_COUNT + 1)))
    assert "messages" in _issue_paths(err)


def test_message_count_at_limit_is_accepted() -> None:
    validate_request(ChatRequest(messages=[USER] * MAX_MESSAGES_COUNT), default_model="m")


def test_user_message_required() -> None:
    err = _invalid(ChatRequest(messages=[SYSTEM]))
    assert err.details is not None
    assert "role 'user'" in err.details["issues"][0]["message"]


def test_at_most_one_system_message() -> None:
    err = _invalid(ChatRequest(messages=[SYSTEM, SYSTEM, USER]))
    assert err.details is not None
    assert "role 'system'" in err.details["issues"][0]["message"]


def test_unknown_role_rejected() -> None:
    err = _invalid(ChatRequest(messages=[USER, ChatMessage(role="tool", content="x")]))  # type: ignore[arg-type]
    assert _issue_paths(err) == ["messages.1.role"]


@pytest.mark.parametrize("content", ["", "x" * (MAX_MESSAGE_CONTENT_LENGTH + 1)])
def test_message_content_bounds(content: str) -> None:
    err = _invalid(ChatRequest(messages=[ChatMessage(role="user", content=content)]))
    assert _issue_paths(err) == ["messages.0.content"]


@pytest.mark.parametrize("model", ["", "m" * (MAX_MODEL_NAME_LENGTH + 1)])
def test_model_name_bounds(model: str) -> None:
    err = _invalid(ChatRequest(messages=[USER], model=model))
    assert _issue_paths(err) == ["model"]


def test_missing_model_without_default_rejected() -> None:
    err = _invalid(ChatRequest(messages=[USER]), default_model=None)
    assert err.message == "Model must be specified either in request or as default"


def test_request_model_satisfies_missing_default() -> None:
    validate_request(ChatRequest(messages=[USER], model="openai/gpt-4o"), default_model="")


@pytest.mark.parametrize(
    ("params", "path"),
    [
        (ModelParams(temperature=2.5), "params.temperature"),
        (ModelParams(temperature=-0.1), "params.temperature"),
        (ModelParams(top_p=1.5), "params.top_p"),
        (ModelParams(max_tokens=0), "params.max_tokens"),
        (ModelParams(max_tokens=1_000_001), "params.max_tokens"),
        (ModelParams(presence_penalty=-3.0), "params.presence_penalty"),
        (ModelParams(frequency_penalty=2.5), "params.frequency_penalty"),
        (ModelParams(seed=1.5), "params.seed"),  # type: ignore[arg-type]
    ],
)
def test_param_ranges(params: ModelParams, path: str) -> None:
    err = _invalid(ChatRequest(messages=[USER], params=params))
    assert _issue_paths(err) == [path]


def test_param_edges_are_inclusive() -> None:
    params = ModelParams(
        temperature=2,
        top_p=0,
        max_tokens=1_000_000,
        presence_penalty=-2,
        frequency_penalty=2,
        stop=["\n\n"],
        seed=7,
    )
    validate_request(ChatRequest(messages=[USER], params=params), default_model="m")


def test_tuple_stop_sequences_are_accepted() -> None:
    request = ChatRequest(messages=[USER], params=ModelParams(stop=("END", "\n\n")))  # type: ignore[arg-type]
    assert validate_request(request, default_model="m") is request


def test_every_issue_is_reported() -> None:
    request = ChatRequest(
        messages=[ChatMessage(role="user", content="")],
        params=ModelParams(temperature=9.0, top_p=9.0),
    )
    err = _invalid(request)
    assert set(_issue_paths(err)) == {"messages.0.content", "params.temperature", "params.top_p"}


@pytest.mark.parametrize("name", ["", "n" * (MAX_SCHEMA_NAME_LENGTH + 1)])
def test_schema_name_bounds(name: str) -> None:
    spec = JsonSchemaSpec(name=name, schema={"type": "object"})
    err = _invalid(ChatRequest(messages=[USER], response_format=spec))
    assert _issue_paths(err) == ["response_format.name"]


def test_non_strict_schema_cannot_be_constructed() -> None:
    with pytest.raises(ValidationError, match="strict must be True"):
        JsonSchemaSpec(name="answer", schema={}, strict=False)  # type: ignore[arg-type]


def test_metadata_is_not_validated_against_the_wire() -> None:
    metadata: dict[str, Any] = {"trace_id": "abc", "nested": {"k": [1, 2]}}
    validate_request(ChatRequest(messages=[USER], metadata=metadata), default_model="m")
