"""
Per-key request generations for last-request-wins commits.

Every fetch takes a token for its key before awaiting anything. When the
fetch completes it may update visible state only if its token is still the
current one for that key.
"""

from __future__ import annotations

import itertools
from typing import Hashable


class RequestGenerations:
    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._current: dict[Hashable, int] = {}

    def begin(self, key: Hashable) -> int:
        """Start a request for key; any earlier request for key becomes superseded."""
        token = next(self._counter)
        self._current[key] = token
        return token

    def is_current(self, key: Hashable, token: int) -> bool:
        return self._current.get(key) == token

    def invalidate(self, key: Hashable | None = None) -> None:
        """Supersede in-flight requests for key, or for every key."""
        keys = list(self._current) if key is None else [key]
        for k in keys:
            self._current[k] = next(self._counter)
