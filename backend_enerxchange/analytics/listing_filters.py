"""Marketplace listing filters (price band and minimum purchase)."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from backend_enerxchange.contract.models import Listing


@dataclass(frozen=True)
class ListingFilter:
    """Unset bounds do not filter. All bounds are inclusive."""

    min_price: Decimal | None = None
    max_price: Decimal | None = None
    min_purchase: Decimal | None = None
    energy_source: str | None = None

    def __post_init__(self) -> None:
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("min_price must not exceed max_price")

    def matches(self, listing: Listing) -> bool:
        if self.min_price is not None and listing.price_per_unit < self.min_price:
            return False
        if self.max_price is not None and listing.price_per_unit > self.max_price:
            return False
        # keeps listings whose own minimum purchase is at least the requested value
        if self.min_purchase is not None and listing.minimum_purchase < self.min_purchase:
            return False
        if self.energy_source and listing.energy_source != self.energy_source:
            return False
        return True


def filter_listings(listings: Iterable[Listing], flt: ListingFilter) -> list[Listing]:
    return [listing for listing in listings if flt.matches(listing)]
