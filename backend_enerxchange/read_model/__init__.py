"""
Read model — repositories over the contract and the façade that wires them.
"""

from backend_enerxchange.read_model.generations import RequestGenerations
from backend_enerxchange.read_model.listings import ListingRepository
from backend_enerxchange.read_model.platform import PlatformStateRepository
from backend_enerxchange.read_model.profiles import UserProfileRepository
from backend_enerxchange.read_model.results import FetchResult, FetchStatus

__all__ = [
    "FetchResult",
    "FetchStatus",
    "ListingRepository",
    "PlatformStateRepository",
    "RequestGenerations",
    "UserProfileRepository",
]
