"""
Listing repository — marketplace listings reconstructed by sequential ID scan.

Responsibilities:
- Read nextListingId and fetch every listing 0..count-1 with bounded
  concurrency; results are emitted in ID order regardless of completion order.
- Skip (and log) per-ID failures, dropping any older copy; report them as
  failed_ids on a partial result.
- Keep the last good visible state; commit a result only if no newer request
  for the same key started meanwhile.
- Fill in the configured default energy source when the contract payload has none.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

from backend_enerxchange.contract.adapter import ContractQueryAdapter
from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import Listing
from backend_enerxchange.core.exceptions import ReadModelError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.read_model.generations import RequestGenerations
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)

DEFAULT_MAX_CONCURRENCY = 8
DEFAULT_ENERGY_SOURCE = "solar"

_SCAN = "scan"


def _listing_key(listing_id: int) -> tuple[str, int]:
    return ("listing", listing_id)


class ListingRepository:
    """Fetch-and-cache layer over energyListings(id)."""

    def __init__(
        self,
        adapter: ContractQueryAdapter,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        default_energy_source: str = DEFAULT_ENERGY_SOURCE,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._adapter = adapter
        self._max_concurrency = max_concurrency
        self._default_source = default_energy_source
        self._gens = RequestGenerations()
        self._by_id: dict[int, Listing] = {}
        self._count: int | None = None

    # ------------------------------------------------------------------ state

    @property
    def loaded(self) -> bool:
        return self._count is not None

    @property
    def snapshot(self) -> list[Listing]:
        """Visible active listings, ascending by id."""
        return [listing for listing in self.all_snapshot if listing.active]

    @property
    def all_snapshot(self) -> list[Listing]:
        """Every visible listing (active or not), ascending by id."""
        if self._count is None:
            return []
        return [self._by_id[i] for i in sorted(self._by_id) if i < self._count]

    def cached(self, listing_id: int) -> Listing | None:
        return self._by_id.get(listing_id)

    def invalidate(self) -> None:
        """Supersede every in-flight fetch; visible state stays until a refresh commits."""
        self._gens.invalidate()
        logger.debug("listings_invalidated")

    async def refresh(self) -> FetchResult[list[Listing]]:
        return await self.load_active_listings()

    # ----------------------------------------------------------------- fetching

    def _decode(self, listing_id: int, raw: object) -> Listing:
        listing = Listing.from_chain(listing_id, raw)  # type: ignore[arg-type]
        if listing.energy_source is None:
            listing = replace(listing, energy_source=self._default_source)
        return listing

    async def _read_listing(self, listing_id: int) -> Listing:
        raw = await self._adapter.read_field("energyListings", listing_id)
        return self._decode(listing_id, raw)

    async def _scan(self) -> tuple[int, list[Listing | None], list[int], list[int]]:
        """Fetch 0..count-1 into an indexed slot array; count read failure propagates."""
        count = int(await self._adapter.read_field("nextListingId"))
        # each slot is also a request for its own id
        tokens = [self._gens.begin(_listing_key(i)) for i in range(count)]
        slots: list[Listing | None] = [None] * count
        failed: list[int] = []
        sem = asyncio.Semaphore(self._max_concurrency)

        async def fetch_slot(listing_id: int) -> None:
            async with sem:
                try:
                    slots[listing_id] = await self._read_listing(listing_id)
                except ReadModelError as e:
                    logger.warning(
                        "listing_fetch_failed",
                        listing_id=listing_id,
                        error_kind=e.kind.value,
                        error=e.message,
                    )
                    failed.append(listing_id)

        await asyncio.gather(*(fetch_slot(i) for i in range(count)))
        return count, slots, tokens, sorted(failed)

    async def _load(self) -> FetchResult[list[Listing]]:
        token = self._gens.begin(_SCAN)
        try:
            count, slots, tokens, failed = await self._scan()
        except ReadModelError as e:
            logger.warning("listing_scan_failed", error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self.all_snapshot)

        fetched = [listing for listing in slots if listing is not None]
        if not self._gens.is_current(_SCAN, token):
            logger.info("listing_scan_superseded", count=count)
            return FetchResult.partial(fetched, failed, stale=True)

        for listing in fetched:
            # skipped when a single-ID fetch started after this slot did
            if self._gens.is_current(_listing_key(listing.id), tokens[listing.id]):
                self._by_id[listing.id] = listing
        for failed_id in failed:
            # a failed id is skipped, not served from an older read
            if self._gens.is_current(_listing_key(failed_id), tokens[failed_id]):
                self._by_id.pop(failed_id, None)
        for stale_id in [i for i in self._by_id if i >= count]:
            del self._by_id[stale_id]
        self._count = count
        if failed:
            logger.warning("listing_scan_partial", count=count, failed_ids=failed)
        else:
            logger.info("listing_scan_complete", count=count)
        return FetchResult.partial(self.all_snapshot, failed)

    async def load_all_listings(self) -> FetchResult[list[Listing]]:
        """Every listing ever created (active or not), ascending by id."""
        return await self._load()

    async def load_active_listings(self) -> FetchResult[list[Listing]]:
        """Active listings only, ascending by id."""
        result = await self._load()
        return result.map([listing for listing in (result.data or []) if listing.active])

    async def load_seller_listings(self, seller: str) -> FetchResult[list[Listing]]:
        """Listings created by seller (active or not), ascending by id."""
        address = normalize_address(seller)
        result = await self._load()
        return result.map([listing for listing in (result.data or []) if listing.seller == address])

    async def fetch_listing(self, listing_id: int) -> FetchResult[Listing]:
        """Fetch one listing by id, bypassing the scan."""
        if listing_id < 0:
            raise ValueError("listing_id must be non-negative")
        key = _listing_key(listing_id)
        token = self._gens.begin(key)
        try:
            listing = await self._read_listing(listing_id)
        except ReadModelError as e:
            logger.warning("listing_fetch_failed", listing_id=listing_id, error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self._by_id.get(listing_id))
        if not self._gens.is_current(key, token):
            return FetchResult.ok(listing, stale=True)
        self._by_id[listing_id] = listing
        if self._count is not None and listing_id >= self._count:
            self._count = listing_id + 1
        return FetchResult.ok(listing)
