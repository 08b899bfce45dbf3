"""
Tests for analytics reductions and AnalyticsAggregator.build().
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import BASE_TS, SELLER_A, SELLER_B, addr

from backend_enerxchange.analytics.aggregates import (
    AnalyticsAggregator,
    market_summary,
    production_by_hour,
    top_producers,
    volume_by_date,
)
from backend_enerxchange.contract.models import Listing, UserProfile
from backend_enerxchange.core.exceptions import WalletConnectionError
from backend_enerxchange.read_model.listings import ListingRepository
from backend_enerxchange.read_model.profiles import UserProfileRepository


def _profile(address, traded, verified=False):
    return UserProfile(
        address=address,
        is_verified=verified,
        total_energy_traded=Decimal(traded),
        reputation_score=Decimal(0),
        last_activity_time=None,
        certification_ipfs_hash="",
        certification_timestamp=None,
        certification_type="",
        certification_valid=False,
    )


def _listing(listing_id, amount, created, price="1", active=True):
    return Listing(
        id=listing_id,
        seller=SELLER_A,
        amount=Decimal(amount),
        price_per_unit=Decimal(price),
        minimum_purchase=Decimal(1),
        expiration_time=None,
        creation_time=created,
        active=active,
    )


def test_top_producers_ties_by_address():
    """Amounts [50, 10, 50, 30, 5] over A..E give A, C, D."""
    a, b, c, d, e = (addr(i) for i in (10, 20, 30, 40, 50))
    profiles = [_profile(a, 50), _profile(b, 10), _profile(c, 50), _profile(d, 30), _profile(e, 5)]

    top = top_producers(profiles, 3)

    assert [p.address for p in top] == [a, c, d]
    # input order does not matter
    assert [p.address for p in top_producers(list(reversed(profiles)), 3)] == [a, c, d]


def test_top_producers_edges():
    assert top_producers([], 5) == []
    assert top_producers([_profile(addr(1), 3)], 0) == []
    with pytest.raises(ValueError):
        top_producers([], -1)


def test_volume_by_date_and_hour():
    d1 = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    d2 = datetime(2024, 5, 1, 23, 10, tzinfo=timezone.utc)
    d3 = datetime(2024, 4, 30, 9, 0, tzinfo=timezone.utc)
    listings = [_listing(0, "10", d1), _listing(1, "5.5", d2), _listing(2, "1", d3), _listing(3, "99", None)]

    volume = volume_by_date(listings)
    hours = production_by_hour(listings)

    assert [(p.day.isoformat(), p.volume) for p in volume] == [
        ("2024-04-30", Decimal(1)),
        ("2024-05-01", Decimal("15.5")),
    ]
    assert [(h.hour, h.amount) for h in hours] == [(9, Decimal(11)), (23, Decimal("5.5"))]
    assert len(production_by_hour(listings, include_empty=True)) == 24


def test_buckets_follow_timezone():
    from zoneinfo import ZoneInfo

    late = datetime(2024, 5, 1, 23, 10, tzinfo=timezone.utc)
    volume = volume_by_date([_listing(0, "1", late)], ZoneInfo("Asia/Tokyo"))
    assert volume[0].day.isoformat() == "2024-05-02"


def test_market_summary():
    created = datetime(2024, 5, 1, tzinfo=timezone.utc)
    listings = [_listing(0, "10", created, "2"), _listing(1, "6", created, "4"), _listing(2, "7", created, "9", active=False)]
    profiles = [_profile(addr(1), 12, verified=True), _profile(addr(2), 3)]

    summary = market_summary(listings, profiles)

    assert summary.total_listings == 3
    assert summary.active_listings == 2
    assert summary.listed_energy == Decimal(16)
    assert summary.average_price == Decimal(3)
    assert summary.total_energy_traded == Decimal(15)
    assert summary.verified_producers == 1
    assert market_summary([], []).average_price is None


@pytest.mark.asyncio
async def test_build_loads_all_listings_and_seller_profiles(adapter):
    adapter.add_listing(SELLER_A, amount=10, created=BASE_TS)
    adapter.add_listing(SELLER_A, amount=5, created=BASE_TS, active=False)
    adapter.add_listing(SELLER_B, amount=2, created=BASE_TS + 3600)
    adapter.set_profile(SELLER_A, traded=40)
    adapter.set_profile(SELLER_B, traded=70)
    listings = ListingRepository(adapter)
    profiles = UserProfileRepository(adapter)
    aggregator = AnalyticsAggregator(listings, profiles, top_n=1)

    result = await aggregator.build()

    assert result.is_ok
    snapshot = result.data
    assert adapter.count("getUserProfile") == 2
    assert sum((p.volume for p in snapshot.volume_by_date), Decimal(0)) == Decimal(17)
    assert [p.address for p in snapshot.top_producers] == [SELLER_B]
    assert snapshot.summary.active_listings == 2
    assert snapshot.to_dict()["summary"]["total_energy_traded"] == "110"


@pytest.mark.asyncio
async def test_build_error_when_listings_unavailable(adapter):
    adapter.failures[("nextListingId",)] = WalletConnectionError()
    aggregator = AnalyticsAggregator(ListingRepository(adapter), UserProfileRepository(adapter))

    result = await aggregator.build()

    assert result.is_error
    assert isinstance(result.error, WalletConnectionError)


def test_amounts_are_exact():
    created = datetime(2024, 5, 1, tzinfo=timezone.utc)
    tiny = Decimal(1).scaleb(-18)
    listings = [_listing(i, tiny, created) for i in range(3)]
    assert volume_by_date(listings)[0].volume == Decimal(3) * tiny
