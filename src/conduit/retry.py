"""Bounded retry policy with capped exponential backoff.

The policy is immutable per client instance; the transport loop consults
``ErrorKind.retryable`` for eligibility and this module for the delay.
"""

from __future__ import annotations

from dataclasses import dataclass
import random
from typing import TYPE_CHECKING

from conduit.errors import ValidationError

if TYPE_CHECKING:
    from collections.abc import Callable


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy: ``max_retries`` extra attempts after the first."""

    max_retries: int = 2
    base_delay_s: float = 0.5
    max_delay_s: float = 4.0

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_retries < 0:
            raise ValidationError("max_retries must be non-negative")
        if self.base_delay_s < 0 or self.max_delay_s < 0:
            raise ValidationError("Retry delays must be non-negative")
        if self.base_delay_s > self.max_delay_s:
            raise ValidationError(
                "base_delay_s must not exceed max_delay_s",
                hint=f"Got base_delay_s={self.base_delay_s}, max_delay_s={self.max_delay_s}.",
            )

    @property
    def max_attempts(self) -> int:
        """Total number of attempts, including the first."""
        return self.max_retries + 1


def compute_backoff_delay(
    policy: RetryPolicy,
    *,
    attempt: int,
    retry_after_s: float | None = None,
    rand: Callable[[], float] = random.random,
) -> float:
    """Return the sleep before retrying after zero-based *attempt*.

    ``min(base * 2**attempt + jitter, max_delay)`` where jitter is uniform in
    ``[0, base)``. A provider ``Retry-After`` can lengthen the delay but never
    past ``max_delay``.
    """
    base = policy.base_delay_s
    delay = base * (2**attempt) + rand() * base
    if retry_after_s is not None:
        delay = max(delay, retry_after_s)
    return min(delay, policy.max_delay_s)
