"""
Tests for TransactionHistoryAggregator: event merge order, source resolution, failures.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from conftest import BASE_TS, BUYER, SELLER_A, WEI

from backend_enerxchange.analytics.history import TransactionHistoryAggregator, TransactionType
from backend_enerxchange.contract.abi import EVENT_LISTED, EVENT_PURCHASED
from backend_enerxchange.core.exceptions import CallReverted, WalletConnectionError
from backend_enerxchange.read_model.listings import ListingRepository


def _purchase(adapter, block, ts, listing_id, amount, total, buyer=BUYER, log_index=0):
    adapter.add_event(
        EVENT_PURCHASED, block, ts, log_index,
        listingId=listing_id, buyer=buyer, amount=amount * WEI, totalPrice=total * WEI,
    )


def _sale(adapter, block, ts, listing_id, amount, price, seller=BUYER, log_index=0):
    adapter.add_event(
        EVENT_LISTED, block, ts, log_index,
        listingId=listing_id, seller=seller, amount=amount * WEI, pricePerUnit=price * WEI,
    )


def _aggregator(adapter):
    listings = ListingRepository(adapter, default_energy_source="solar")
    return TransactionHistoryAggregator(adapter, listings, default_energy_source="solar")


@pytest.mark.asyncio
async def test_three_purchases_two_sales_ascending(adapter):
    """3 purchases and 2 sales with distinct timestamps come back as 5 records, strictly ascending."""
    for i in range(4):
        adapter.add_listing(SELLER_A)
    _purchase(adapter, 10, BASE_TS + 50, 0, 1, 2)
    _purchase(adapter, 3, BASE_TS + 10, 1, 2, 4)
    _purchase(adapter, 7, BASE_TS + 30, 0, 3, 6)
    _sale(adapter, 5, BASE_TS + 20, 2, 10, 1)
    _sale(adapter, 9, BASE_TS + 40, 3, 20, 2)

    result = await _aggregator(adapter).build_history(BUYER)

    assert result.is_ok
    records = result.data
    assert len(records) == 5
    stamps = [r.timestamp for r in records]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))
    assert [r.type for r in records] == [
        TransactionType.PURCHASE,
        TransactionType.SALE,
        TransactionType.PURCHASE,
        TransactionType.SALE,
        TransactionType.PURCHASE,
    ]


@pytest.mark.asyncio
async def test_equal_timestamps_purchase_before_sale(adapter):
    adapter.add_listing(SELLER_A)
    adapter.add_listing(SELLER_A)
    # sale is earlier in the chain but shares the block timestamp
    _sale(adapter, 4, BASE_TS, 1, 5, 1, log_index=0)
    _purchase(adapter, 4, BASE_TS, 0, 1, 1, log_index=1)

    records = (await _aggregator(adapter).build_history(BUYER)).data

    assert [r.type for r in records] == [TransactionType.PURCHASE, TransactionType.SALE]


@pytest.mark.asyncio
async def test_prices_and_sources(adapter):
    adapter.add_listing(SELLER_A)
    adapter.listings[0]["energySource"] = "wind"
    _purchase(adapter, 1, BASE_TS, 0, 4, 12)
    _sale(adapter, 2, BASE_TS + 1, 0, 10, 3)

    purchase, sale = (await _aggregator(adapter).build_history(BUYER)).data

    assert purchase.price == Decimal(12)
    assert sale.price == Decimal(3)
    assert purchase.amount == Decimal(4)
    assert purchase.energy_source == sale.energy_source == "wind"


@pytest.mark.asyncio
async def test_each_listing_resolved_once_per_build(adapter):
    adapter.add_listing(SELLER_A)
    for block in range(1, 5):
        _purchase(adapter, block, BASE_TS + block, 0, 1, 1)

    await _aggregator(adapter).build_history(BUYER)

    assert adapter.count("energyListings") == 1


@pytest.mark.asyncio
async def test_only_events_of_the_address(adapter):
    adapter.add_listing(SELLER_A)
    _purchase(adapter, 1, BASE_TS, 0, 1, 1)
    _purchase(adapter, 2, BASE_TS + 1, 0, 1, 1, buyer=SELLER_A)

    records = (await _aggregator(adapter).build_history(BUYER)).data

    assert len(records) == 1


@pytest.mark.asyncio
async def test_unresolved_listing_keeps_record(adapter):
    adapter.add_listing(SELLER_A)
    _purchase(adapter, 1, BASE_TS, 0, 1, 1)
    adapter.failures[("energyListings", 0)] = CallReverted(reason="gone")

    result = await _aggregator(adapter).build_history(BUYER)

    assert result.is_partial
    assert result.failed_ids == (0,)
    assert result.data[0].energy_source == "solar"


@pytest.mark.asyncio
async def test_event_failure_keeps_previous_history(adapter):
    adapter.add_listing(SELLER_A)
    _purchase(adapter, 1, BASE_TS, 0, 1, 1)
    aggregator = _aggregator(adapter)
    await aggregator.build_history(BUYER)

    adapter.failures[("events", EVENT_LISTED)] = WalletConnectionError()
    result = await aggregator.build_history(BUYER)

    assert result.is_error
    assert len(result.data) == 1
    assert aggregator.cached(BUYER) == result.data


@pytest.mark.asyncio
async def test_earlier_build_resolving_last_does_not_win(adapter):
    adapter.add_listing(SELLER_A)
    _purchase(adapter, 3, BASE_TS + 10, 0, 1, 2)
    aggregator = _aggregator(adapter)
    gate = adapter.gate("events", EVENT_PURCHASED)

    older = asyncio.create_task(aggregator.build_history(BUYER))
    for _ in range(5):
        await asyncio.sleep(0)
    _purchase(adapter, 8, BASE_TS + 60, 0, 2, 4)
    newer = await aggregator.build_history(BUYER)
    gate.set()
    late = await older

    assert len(newer.data) == 2 and newer.stale is False
    assert len(late.data) == 1 and late.stale is True
    assert len(aggregator.cached(BUYER)) == 2
