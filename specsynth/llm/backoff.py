"""Retry policy for upstream LLM calls.

Pure decision functions. Nothing here sleeps; the gateway owns the actual
wait so tests can drive the policy without real delays.

  classify(error)          → TRANSIENT or FATAL
  should_retry(...)        → bool, bounded by the attempt budget
  backoff_delay(...)       → base · 2^attempt · (1 + jitter), jitter ∈ [0, 0.1)
  RetryState               → {attempt, last_error} carried across the loop
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class ErrorClass(str, Enum):
    TRANSIENT = "transient"
    FATAL = "fatal"


# Provider error types worth another attempt. "network_error" is ours:
# it tags transport failures that never produced an HTTP response.
TRANSIENT_ERROR_TYPES = frozenset({
    "rate_limit_error",
    "overloaded_error",
    "api_error",
    "network_error",
})

MAX_JITTER = 0.1


@dataclass(frozen=True)
class UpstreamError:
    """A decoded provider failure: {type, message} plus HTTP status if any."""
    type: str
    message: str
    status: Optional[int] = None

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.type} (HTTP {self.status}): {self.message}"
        return f"{self.type}: {self.message}"


@dataclass(frozen=True)
class RetryState:
    """Where the retry loop is: zero-based attempt index and last failure."""
    attempt: int = 0
    last_error: Optional[UpstreamError] = None

    def advance(self, error: UpstreamError) -> "RetryState":
        return RetryState(attempt=self.attempt + 1, last_error=error)


def classify(error: UpstreamError) -> ErrorClass:
    """Rate limits, overload, generic upstream and network errors are transient."""
    if error.type in TRANSIENT_ERROR_TYPES:
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def should_retry(classification: ErrorClass, attempt_index: int, max_attempts: int) -> bool:
    """Whether another attempt is allowed after a failure at attempt_index.

    The last attempt (attempt_index >= max_attempts - 1) never retries,
    whatever the classification.
    """
    if attempt_index >= max_attempts - 1:
        return False
    return classification is ErrorClass.TRANSIENT


def backoff_delay(
    attempt_index: int,
    base_ms: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """Delay in milliseconds before the attempt following attempt_index.

    Result lies in [base·2^attempt, base·2^attempt·1.1).
    """
    jitter = rand() * MAX_JITTER
    return base_ms * (2 ** attempt_index) * (1 + jitter)
