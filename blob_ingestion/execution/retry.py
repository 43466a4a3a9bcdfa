"""
Per-request classification and the retry state machine.

A slot fetch moves through ``Attempting(n)``; every HTTP reply is reduced to a
``ResponseClass`` and ``RetryPolicy.next_state`` decides whether the fetch is
finished (``SUCCESS`` / ``NOT_FOUND`` / ``FAILED``) or goes to
``Attempting(n + 1)`` after ``delay_for(n)`` (``RETRY``).
"""
from enum import Enum
from dataclasses import dataclass


class ResponseClass(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"
    NETWORK_ERROR = "network_error"
    MALFORMED = "malformed"


RETRYABLE = frozenset({
    ResponseClass.RATE_LIMITED,
    ResponseClass.SERVER_ERROR,
    ResponseClass.NETWORK_ERROR,
})


class AttemptState(str, Enum):
    SUCCESS = "SUCCESS"
    NOT_FOUND = "NOT_FOUND"
    RETRY = "RETRY"
    FAILED = "FAILED"


def classify_status(status: int) -> ResponseClass:
    # NOT_FOUND: proposer missed the slot, or the node has no sidecars for it
    if status in (404, 204):
        return ResponseClass.NOT_FOUND
    if 200 <= status < 300:
        return ResponseClass.OK
    if status == 429:
        return ResponseClass.RATE_LIMITED
    if 500 <= status < 600:
        return ResponseClass.SERVER_ERROR
    return ResponseClass.CLIENT_ERROR


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 8.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def next_state(self, attempt: int, response_class: ResponseClass) -> AttemptState:
        if response_class is ResponseClass.OK:
            return AttemptState.SUCCESS
        if response_class is ResponseClass.NOT_FOUND:
            return AttemptState.NOT_FOUND
        if response_class in RETRYABLE and attempt < self.max_attempts:
            return AttemptState.RETRY
        return AttemptState.FAILED

    def delay_for(self, attempt: int, retry_after: float | None = None) -> float:
        """Backoff before attempt ``attempt + 1``."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.max_delay)
