"""
Platform state repository — admin metrics and token balances.

Responsibilities:
- Load platformFee, feeCollector, paused, totalSupply and nextListingId
  concurrently into one PlatformState.
- Read balanceOf / allowance per address (exact Decimal amounts).
- Keep the last good values visible on failure.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from backend_enerxchange.contract.adapter import ContractQueryAdapter
from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import PlatformState
from backend_enerxchange.contract.units import from_wei
from backend_enerxchange.core.exceptions import ReadModelError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.read_model.generations import RequestGenerations
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)

_STATE = "state"


class PlatformStateRepository:
    def __init__(self, adapter: ContractQueryAdapter) -> None:
        self._adapter = adapter
        self._gens = RequestGenerations()
        self._state: PlatformState | None = None
        self._balances: dict[str, Decimal] = {}

    @property
    def snapshot(self) -> PlatformState | None:
        return self._state

    def invalidate(self) -> None:
        self._gens.invalidate()

    async def refresh(self) -> FetchResult[PlatformState]:
        """Reload platform metrics and every balance read so far."""
        result = await self.load()
        for address in list(self._balances):
            await self.get_balance(address)
        return result

    async def load(self) -> FetchResult[PlatformState]:
        token = self._gens.begin(_STATE)
        read = self._adapter.read_field
        try:
            fee, collector, paused, supply, next_id = await asyncio.gather(
                read("platformFee"),
                read("feeCollector"),
                read("paused"),
                read("totalSupply"),
                read("nextListingId"),
            )
        except ReadModelError as e:
            logger.warning("platform_state_failed", error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self._state)
        state = PlatformState(
            platform_fee=int(fee),
            fee_collector=normalize_address(str(collector)),
            paused=bool(paused),
            total_supply=from_wei(int(supply)),
            next_listing_id=int(next_id),
        )
        if not self._gens.is_current(_STATE, token):
            return FetchResult.ok(state, stale=True)
        self._state = state
        logger.info("platform_state_loaded", paused=state.paused, next_listing_id=state.next_listing_id)
        return FetchResult.ok(state)

    async def get_balance(self, address: str) -> FetchResult[Decimal]:
        """Token balance of address."""
        key = normalize_address(address)
        token = self._gens.begin(("balance", key))
        try:
            raw = await self._adapter.read_field("balanceOf", key)
        except ReadModelError as e:
            logger.warning("balance_fetch_failed", address=key, error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self._balances.get(key))
        balance = from_wei(int(raw))
        if not self._gens.is_current(("balance", key), token):
            return FetchResult.ok(balance, stale=True)
        self._balances[key] = balance
        return FetchResult.ok(balance)

    async def get_allowance(self, owner: str, spender: str) -> FetchResult[Decimal]:
        """Amount spender may transfer from owner (not cached)."""
        owner_key = normalize_address(owner)
        spender_key = normalize_address(spender)
        try:
            raw = await self._adapter.read_field("allowance", owner_key, spender_key)
        except ReadModelError as e:
            logger.warning("allowance_fetch_failed", address=owner_key, spender=spender_key, error=e.message)
            return FetchResult.err(e)
        return FetchResult.ok(from_wei(int(raw)))
