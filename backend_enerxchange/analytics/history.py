"""
Transaction history aggregator — one address's purchases and sales as a ledger.

Responsibilities:
- Read EnergyPurchased events filtered by buyer and EnergyListed events
  filtered by seller.
- Resolve each referenced listing once per build for its energy source.
- Merge into TransactionRecords ordered by block timestamp; on equal
  timestamps purchases come first, then event stream order.
- Cache the last committed history per address (last request wins).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any

from backend_enerxchange.contract.abi import EVENT_LISTED, EVENT_PURCHASED
from backend_enerxchange.contract.adapter import ContractQueryAdapter
from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import ContractEvent
from backend_enerxchange.contract.units import from_wei, plain
from backend_enerxchange.core.exceptions import ReadModelError
from backend_enerxchange.enerx_logging import bind_address, get_logger
from backend_enerxchange.read_model.generations import RequestGenerations
from backend_enerxchange.read_model.listings import DEFAULT_ENERGY_SOURCE, ListingRepository
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    SALE = "sale"


# purchases sort ahead of sales at the same timestamp
_TYPE_RANK = {TransactionType.PURCHASE: 0, TransactionType.SALE: 1}


@dataclass(frozen=True)
class TransactionRecord:
    """One purchase or sale in an address's history."""

    type: TransactionType
    listing_id: int
    amount: Decimal
    price: Decimal
    """totalPrice for purchases, pricePerUnit for sales."""
    timestamp: datetime
    energy_source: str
    tx_hash: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "listing_id": self.listing_id,
            "amount": plain(self.amount),
            "price": plain(self.price),
            "timestamp": self.timestamp.isoformat(),
            "energy_source": self.energy_source,
            "tx_hash": self.tx_hash,
        }


def _record(event: ContractEvent, kind: TransactionType, source: str) -> TransactionRecord:
    args = event.args
    price_field = "totalPrice" if kind is TransactionType.PURCHASE else "pricePerUnit"
    return TransactionRecord(
        type=kind,
        listing_id=int(args["listingId"]),
        amount=from_wei(int(args["amount"])),
        price=from_wei(int(args[price_field])),
        timestamp=datetime.fromtimestamp(event.timestamp, tz=timezone.utc),
        energy_source=source,
        tx_hash=event.transaction_hash,
    )


def merge_history(
    purchases: list[ContractEvent],
    sales: list[ContractEvent],
    sources: dict[int, str],
    default_source: str = DEFAULT_ENERGY_SOURCE,
) -> list[TransactionRecord]:
    """Pure merge of two event streams into timestamp order."""
    tagged: list[tuple[tuple[int, int, int, int], TransactionRecord]] = []
    for kind, events in ((TransactionType.PURCHASE, purchases), (TransactionType.SALE, sales)):
        for event in events:
            listing_id = int(event.args["listingId"])
            rec = _record(event, kind, sources.get(listing_id, default_source))
            key = (event.timestamp, _TYPE_RANK[kind], event.block_number, event.log_index)
            tagged.append((key, rec))
    tagged.sort(key=lambda item: item[0])
    return [rec for _, rec in tagged]


class TransactionHistoryAggregator:
    def __init__(
        self,
        adapter: ContractQueryAdapter,
        listings: ListingRepository,
        *,
        default_energy_source: str = DEFAULT_ENERGY_SOURCE,
    ) -> None:
        self._adapter = adapter
        self._listings = listings
        self._default_source = default_energy_source
        self._gens = RequestGenerations()
        self._histories: dict[str, list[TransactionRecord]] = {}

    def cached(self, address: str) -> list[TransactionRecord] | None:
        return self._histories.get(normalize_address(address))

    def invalidate(self, address: str | None = None) -> None:
        self._gens.invalidate(normalize_address(address) if address else None)

    async def refresh(self) -> FetchResult[dict[str, list[TransactionRecord]]]:
        """Rebuild every history built so far."""
        failed: list[Any] = []
        for address in list(self._histories):
            result = await self.build_history(address)
            if result.is_error:
                failed.append(address)
            else:
                failed.extend(result.failed_ids)
        logger.debug("history_refresh_done", addresses=len(self._histories), failed=len(failed))
        return FetchResult.partial(dict(self._histories), failed)

    async def _resolve_sources(self, listing_ids: list[int]) -> tuple[dict[int, str], list[int]]:
        results = await asyncio.gather(*(self._listings.fetch_listing(i) for i in listing_ids))
        sources: dict[int, str] = {}
        failed: list[int] = []
        for listing_id, result in zip(listing_ids, results):
            if result.is_error or result.data is None:
                failed.append(listing_id)
            else:
                sources[listing_id] = result.data.energy_source or self._default_source
        return sources, failed

    async def build_history(self, address: str) -> FetchResult[list[TransactionRecord]]:
        """
        Build the ledger for address.

        Event read failures return an error result carrying the previous
        history; unresolved listings keep their records with the default
        source and are reported in failed_ids.
        """
        key = normalize_address(address)
        log = bind_address(key)
        token = self._gens.begin(key)
        try:
            purchases, sales = await asyncio.gather(
                self._adapter.read_event_log(EVENT_PURCHASED, {"buyer": key}),
                self._adapter.read_event_log(EVENT_LISTED, {"seller": key}),
            )
        except ReadModelError as e:
            log.warning("history_events_failed", error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self._histories.get(key))

        listing_ids = sorted({int(ev.args["listingId"]) for ev in [*purchases, *sales]})
        sources, failed = await self._resolve_sources(listing_ids)
        records = merge_history(purchases, sales, sources, self._default_source)

        if not self._gens.is_current(key, token):
            log.info("history_build_superseded")
            return FetchResult.partial(records, failed, stale=True)
        self._histories[key] = records
        log.info(
            "history_built",
            purchases=len(purchases),
            sales=len(sales),
            failed_ids=failed,
        )
        return FetchResult.partial(records, failed)
