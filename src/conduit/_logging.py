"""Logger seam: any ``logging.Logger``-shaped object may be injected."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LoggerLike(Protocol):
    """Minimal logger surface the gateway writes to."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


def resolve_logger(logger: LoggerLike | None, name: str) -> LoggerLike:
    """Return *logger*, or the library logger for *name* (silent by default)."""
    return logger if logger is not None else logging.getLogger(name)
