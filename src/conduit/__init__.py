"""conduit: an async gateway client for OpenAI-compatible chat completions.

Public API:
    - GatewayClient: chat(), chat_json(), chat_stream()
    - Config: Frozen configuration (``Config.from_env()`` reads OPENROUTER_*)
    - ChatRequest / ChatMessage / ModelParams: Request types
    - GatewayError and ErrorKind: The sole error contract
"""

from __future__ import annotations

import logging

from conduit.cancellation import CancellationToken
from conduit.client import GatewayClient, create_gateway_client
from conduit.config import Config
from conduit.errors import (
    AuthorizationError,
    ContentFilterError,
    ContextLengthError,
    ErrorKind,
    GatewayError,
    GatewayTimeoutError,
    NetworkError,
    ParseError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from conduit.models import (
    ChatJsonResponse,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    JsonSchemaSpec,
    ModelParams,
    StreamCallbacks,
)
from conduit.retry import RetryPolicy

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("conduit-gateway")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("conduit").addHandler(logging.NullHandler())

__all__ = [  # noqa: RUF022
    # Entry points
    "GatewayClient",
    "create_gateway_client",
    "Config",
    "RetryPolicy",
    "CancellationToken",
    # Types
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatJsonResponse",
    "JsonSchemaSpec",
    "ModelParams",
    "StreamCallbacks",
    # Errors
    "ErrorKind",
    "GatewayError",
    "AuthorizationError",
    "RateLimitError",
    "ValidationError",
    "ContextLengthError",
    "ContentFilterError",
    "GatewayTimeoutError",
    "NetworkError",
    "ParseError",
    "ServerError",
]
