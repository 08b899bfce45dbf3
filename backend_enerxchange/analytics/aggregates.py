"""
Analytics aggregator — volume by date, production by hour, top producers.

Responsibilities:
- Pure reductions over listing and profile snapshots (no I/O, exact Decimal sums).
- Bucket listing creation times by calendar day and by hour of day in a
  configurable timezone (UTC by default).
- Rank producers by total energy traded, ties broken by lower-cased address.
- AnalyticsAggregator.build(): load every listing and the sellers' profiles,
  then compute a snapshot. Nothing is cached; every call recomputes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from backend_enerxchange.contract.models import Listing, UserProfile
from backend_enerxchange.contract.units import plain
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.read_model.listings import ListingRepository
from backend_enerxchange.read_model.profiles import UserProfileRepository
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)

DEFAULT_TOP_N = 5
UTC = ZoneInfo("UTC")


@dataclass(frozen=True)
class VolumePoint:
    day: date
    volume: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "volume": plain(self.volume)}


@dataclass(frozen=True)
class HourlyProduction:
    hour: int
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {"hour": self.hour, "amount": plain(self.amount)}


@dataclass(frozen=True)
class MarketSummary:
    total_listings: int
    active_listings: int
    listed_energy: Decimal
    """Sum of amount over active listings."""
    average_price: Decimal | None
    """Mean price_per_unit over active listings; None when there are none."""
    total_energy_traded: Decimal
    verified_producers: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_listings": self.total_listings,
            "active_listings": self.active_listings,
            "listed_energy": plain(self.listed_energy),
            "average_price": plain(self.average_price) if self.average_price is not None else None,
            "total_energy_traded": plain(self.total_energy_traded),
            "verified_producers": self.verified_producers,
        }


@dataclass(frozen=True)
class AnalyticsSnapshot:
    volume_by_date: list[VolumePoint]
    production_by_hour: list[HourlyProduction]
    top_producers: list[UserProfile]
    summary: MarketSummary
    computed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "volume_by_date": [p.to_dict() for p in self.volume_by_date],
            "production_by_hour": [p.to_dict() for p in self.production_by_hour],
            "top_producers": [
                {"address": p.address, "total_energy_traded": plain(p.total_energy_traded)}
                for p in self.top_producers
            ],
            "summary": self.summary.to_dict(),
            "computed_at": self.computed_at.isoformat(),
        }


def volume_by_date(listings: Iterable[Listing], tz: ZoneInfo = UTC) -> list[VolumePoint]:
    """Sum of listing amounts per creation day, ascending by day."""
    buckets: dict[date, Decimal] = {}
    for listing in listings:
        if listing.creation_time is None:
            continue
        day = listing.creation_time.astimezone(tz).date()
        buckets[day] = buckets.get(day, Decimal(0)) + listing.amount
    return [VolumePoint(day, buckets[day]) for day in sorted(buckets)]


def production_by_hour(
    listings: Iterable[Listing],
    tz: ZoneInfo = UTC,
    *,
    include_empty: bool = False,
) -> list[HourlyProduction]:
    """Sum of listing amounts per creation hour (0-23), ascending by hour."""
    buckets: dict[int, Decimal] = {}
    if include_empty:
        buckets = {hour: Decimal(0) for hour in range(24)}
    for listing in listings:
        if listing.creation_time is None:
            continue
        hour = listing.creation_time.astimezone(tz).hour
        buckets[hour] = buckets.get(hour, Decimal(0)) + listing.amount
    return [HourlyProduction(hour, buckets[hour]) for hour in sorted(buckets)]


def top_producers(profiles: Iterable[UserProfile], n: int = DEFAULT_TOP_N) -> list[UserProfile]:
    """The n profiles with the highest total_energy_traded."""
    if n < 0:
        raise ValueError("n must be non-negative")
    ranked = sorted(profiles, key=lambda p: (-p.total_energy_traded, p.address.lower()))
    return ranked[:n]


def market_summary(listings: Iterable[Listing], profiles: Iterable[UserProfile]) -> MarketSummary:
    all_listings = list(listings)
    active = [listing for listing in all_listings if listing.active]
    profile_list = list(profiles)
    average = None
    if active:
        average = sum((listing.price_per_unit for listing in active), Decimal(0)) / len(active)
    return MarketSummary(
        total_listings=len(all_listings),
        active_listings=len(active),
        listed_energy=sum((listing.amount for listing in active), Decimal(0)),
        average_price=average,
        total_energy_traded=sum((p.total_energy_traded for p in profile_list), Decimal(0)),
        verified_producers=sum(1 for p in profile_list if p.is_verified),
    )


class AnalyticsAggregator:
    def __init__(
        self,
        listings: ListingRepository,
        profiles: UserProfileRepository,
        *,
        timezone: str = "UTC",
        top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self._listings = listings
        self._profiles = profiles
        self._tz = ZoneInfo(timezone)
        self._top_n = top_n

    def compute(self, listings: Iterable[Listing], profiles: Iterable[UserProfile]) -> AnalyticsSnapshot:
        listing_list = list(listings)
        profile_list = list(profiles)
        return AnalyticsSnapshot(
            volume_by_date=volume_by_date(listing_list, self._tz),
            production_by_hour=production_by_hour(listing_list, self._tz),
            top_producers=top_producers(profile_list, self._top_n),
            summary=market_summary(listing_list, profile_list),
        )

    async def build(self) -> FetchResult[AnalyticsSnapshot]:
        """Load every listing, then one profile per distinct seller, then compute."""
        listings = await self._listings.load_all_listings()
        if listings.is_error:
            assert listings.error is not None
            return FetchResult.err(listings.error)
        listing_data = listings.data or []
        profiles = await self._profiles.get_or_fetch_many(listing.seller for listing in listing_data)
        profile_data = list((profiles.data or {}).values())
        snapshot = self.compute(listing_data, profile_data)
        failed = [*listings.failed_ids, *profiles.failed_ids]
        logger.info(
            "analytics_computed",
            listings=len(listing_data),
            producers=len(profile_data),
            failed_ids=failed,
        )
        return FetchResult.partial(snapshot, failed)
