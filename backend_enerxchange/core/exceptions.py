"""
Application-level exceptions.

Responsibilities:
- Define the read-model error taxonomy (connection, revert, timeout, partial scan,
  mutation already in flight).
- Provide consistent error codes and user-facing messages for the API and the
  mutation dispatcher.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class ErrorKind(str, Enum):
    """Stable error codes surfaced to API clients."""

    CONNECTION = "connection_error"
    REVERTED = "call_reverted"
    TIMEOUT = "timeout"
    PARTIAL = "partial_fetch_failure"
    IN_PROGRESS = "mutation_in_progress"


class ReadModelError(Exception):
    """Base class for every recoverable read-model failure."""

    kind: ErrorKind = ErrorKind.CONNECTION
    default_message = "Read model error"

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind.value, "message": self.message}
        if self.context:
            out["context"] = {k: _jsonable(v) for k, v in self.context.items()}
        return out


class WalletConnectionError(ReadModelError):
    """No wallet / provider reachable, or no account available to sign."""

    kind = ErrorKind.CONNECTION
    default_message = "No wallet or provider available. Please connect your wallet."


class CallReverted(ReadModelError):
    """The contract rejected a read or a write (insufficient balance, bad amount, unauthorized caller...)."""

    kind = ErrorKind.REVERTED
    default_message = "Transaction failed. Please check your balance and the listing details."

    def __init__(self, message: str | None = None, *, reason: str | None = None, **context: Any) -> None:
        self.reason = reason
        if reason is not None:
            context["reason"] = reason
        super().__init__(message, **context)


class CallTimeout(ReadModelError):
    """A call or a confirmation did not complete within its bound."""

    kind = ErrorKind.TIMEOUT
    default_message = "The wallet or node did not respond in time. Please retry."

    def __init__(self, message: str | None = None, *, timeout_sec: float | None = None, **context: Any) -> None:
        self.timeout_sec = timeout_sec
        if timeout_sec is not None:
            context["timeout_sec"] = timeout_sec
        super().__init__(message, **context)


class PartialFetchFailure(ReadModelError):
    """One or more per-ID reads failed during a range scan; the rest succeeded."""

    kind = ErrorKind.PARTIAL
    default_message = "Some records could not be loaded."

    def __init__(self, failed_ids: Iterable[Any], message: str | None = None, **context: Any) -> None:
        self.failed_ids = tuple(failed_ids)
        context["failed_ids"] = list(self.failed_ids)
        super().__init__(message, **context)


class MutationInProgress(ReadModelError):
    """A mutation for the same form is still submitting or confirming."""

    kind = ErrorKind.IN_PROGRESS
    default_message = "A transaction from this form is still pending."


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return str(value)
