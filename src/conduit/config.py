"""Configuration: frozen Config resolved from arguments or the environment."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from conduit.errors import AuthorizationError, ValidationError
from conduit.retry import RetryPolicy
from conduit.transport import DEFAULT_APP_TITLE, DEFAULT_BASE_URL, DEFAULT_TIMEOUT_S

if TYPE_CHECKING:
    from collections.abc import Mapping

API_KEY_ENV = "OPENROUTER_API_KEY"
_ENV_PREFIX = "OPENROUTER_"


@dataclass(frozen=True)
class Config:
    """Immutable gateway configuration.

    The API key is a secret and is redacted from ``repr``. Only plain values
    are held here; ``Config.from_env()`` is the one place that reads the
    environment.

    Example:
        config = Config(api_key="sk-or-...", default_model="openai/gpt-4o-mini")
    """

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    default_model: str = ""
    timeout_s: float = DEFAULT_TIMEOUT_S
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    app_title: str = DEFAULT_APP_TITLE
    site_url: str | None = None

    def __post_init__(self) -> None:
        """Fail fast on values the transport cannot work with."""
        if not isinstance(self.api_key, str) or not self.api_key.strip():
            raise AuthorizationError(
                "API key is required and must be a non-empty string",
                hint=f"Set {API_KEY_ENV} environment variable or pass api_key=...",
            )
        if not self.timeout_s > 0:
            raise ValidationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This bounds each call from start to finish, retries included.",
            )

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> Config:
        """Build a Config from ``OPENROUTER_*`` variables.

        ``.env`` files are loaded first when reading the process environment.
        Keyword *overrides* win over the environment.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def env(name: str) -> str | None:
            value = environ.get(f"{_ENV_PREFIX}{name}")
            return value.strip() if isinstance(value, str) and value.strip() else None

        values: dict[str, Any] = {"api_key": env("API_KEY") or ""}
        if base_url := env("BASE_URL"):
            values["base_url"] = base_url
        if model := env("DEFAULT_MODEL"):
            values["default_model"] = model
        if timeout_ms := env("TIMEOUT_MS"):
            values["timeout_s"] = _ms_to_s("TIMEOUT_MS", timeout_ms)
        if app_title := env("APP_TITLE"):
            values["app_title"] = app_title
        if site_url := env("SITE_URL"):
            values["site_url"] = site_url

        retry_kwargs: dict[str, Any] = {}
        if max_retries := env("MAX_RETRIES"):
            retry_kwargs["max_retries"] = _int("MAX_RETRIES", max_retries)
        if base_delay := env("BASE_DELAY_MS"):
            retry_kwargs["base_delay_s"] = _ms_to_s("BASE_DELAY_MS", base_delay)
        if max_delay := env("MAX_DELAY_MS"):
            retry_kwargs["max_delay_s"] = _ms_to_s("MAX_DELAY_MS", max_delay)
        if retry_kwargs:
            values["retry"] = RetryPolicy(**retry_kwargs)

        values.update(overrides)
        return cls(**values)

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(base_url={self.base_url!r}, default_model={self.default_model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, timeout_s={self.timeout_s}, "
            f"retry={self.retry!r})"
        )

    __repr__ = __str__


def _int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(
            f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}"
        ) from None


def _ms_to_s(name: str, raw: str) -> float:
    try:
        return float(raw) / 1000.0
    except ValueError:
        raise ValidationError(
            f"{_ENV_PREFIX}{name} must be a number of milliseconds, got {raw!r}"
        ) from None
