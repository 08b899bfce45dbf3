"""
Contract boundary: ABI, adapter, units, typed models and the account watcher.
"""

from backend_enerxchange.contract.account import AccountWatcher, Subscription
from backend_enerxchange.contract.adapter import (
    ContractQueryAdapter,
    PendingMutation,
    Web3ContractAdapter,
)
from backend_enerxchange.contract.models import (
    ContractEvent,
    Listing,
    MutationReceipt,
    PlatformState,
    UserProfile,
)

__all__ = [
    "AccountWatcher",
    "ContractEvent",
    "ContractQueryAdapter",
    "Listing",
    "MutationReceipt",
    "PendingMutation",
    "PlatformState",
    "Subscription",
    "UserProfile",
    "Web3ContractAdapter",
]
