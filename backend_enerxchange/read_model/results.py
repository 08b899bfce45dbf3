"""
FetchResult: what a repository returns instead of raising past its boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Iterable, TypeVar

from backend_enerxchange.core.exceptions import PartialFetchFailure, ReadModelError

T = TypeVar("T")


class FetchStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    ERROR = "error"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """
    Outcome of one repository load.

    On ERROR, data holds the previously visible state (possibly None) so a
    consumer can keep rendering it. stale=True marks a result that completed
    after a newer request for the same key and was therefore not committed.
    """

    status: FetchStatus
    data: T | None = None
    failed_ids: tuple[Any, ...] = field(default_factory=tuple)
    error: ReadModelError | None = None
    stale: bool = False

    @classmethod
    def ok(cls, data: T, *, stale: bool = False) -> "FetchResult[T]":
        return cls(FetchStatus.OK, data=data, stale=stale)

    @classmethod
    def partial(cls, data: T, failed_ids: Iterable[Any], *, stale: bool = False) -> "FetchResult[T]":
        ids = tuple(failed_ids)
        if not ids:
            return cls(FetchStatus.OK, data=data, stale=stale)
        return cls(
            FetchStatus.PARTIAL,
            data=data,
            failed_ids=ids,
            error=PartialFetchFailure(ids),
            stale=stale,
        )

    @classmethod
    def err(cls, error: ReadModelError, data: T | None = None) -> "FetchResult[T]":
        return cls(FetchStatus.ERROR, data=data, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is FetchStatus.OK

    @property
    def is_partial(self) -> bool:
        return self.status is FetchStatus.PARTIAL

    @property
    def is_error(self) -> bool:
        return self.status is FetchStatus.ERROR

    def unwrap(self) -> T:
        """Return data, raising the error when the load failed outright."""
        if self.is_error:
            assert self.error is not None
            raise self.error
        return self.data  # type: ignore[return-value]

    def map(self, data: Any) -> "FetchResult[Any]":
        """Same status, failed_ids and error around different data."""
        return FetchResult(self.status, data=data, failed_ids=self.failed_ids, error=self.error, stale=self.stale)
