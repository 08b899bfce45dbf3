"""
Core utilities — error taxonomy and cross-cutting helpers.

Shared by the contract adapter, read-model repositories, mutation dispatcher
and API server.
"""

from backend_enerxchange.core.exceptions import (
    CallReverted,
    CallTimeout,
    ErrorKind,
    MutationInProgress,
    PartialFetchFailure,
    ReadModelError,
    WalletConnectionError,
)

__all__ = [
    "CallReverted",
    "CallTimeout",
    "ErrorKind",
    "MutationInProgress",
    "PartialFetchFailure",
    "ReadModelError",
    "WalletConnectionError",
]
