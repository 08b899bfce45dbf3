"""
Mutations — contract writes and the refresh that follows them.
"""

from backend_enerxchange.mutations.catalog import MUTATIONS, MutationSpec, check_purchase, get_mutation
from backend_enerxchange.mutations.dispatcher import (
    MutationDispatcher,
    MutationOutcome,
    MutationState,
)

__all__ = [
    "MUTATIONS",
    "MutationDispatcher",
    "MutationOutcome",
    "MutationSpec",
    "MutationState",
    "check_purchase",
    "get_mutation",
]
