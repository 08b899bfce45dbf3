"""
User profile repository — getUserProfile(address), cached per checksum address.

Responsibilities:
- Fetch single profiles on demand (last request per address wins).
- Batch-fetch many addresses: dedupe first, reuse fresh cache entries, fetch
  the rest with bounded concurrency.
- Keep invalidated entries visible until a re-fetch succeeds.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

from backend_enerxchange.contract.adapter import ContractQueryAdapter
from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import UserProfile
from backend_enerxchange.core.exceptions import ReadModelError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.read_model.generations import RequestGenerations
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)


class UserProfileRepository:
    def __init__(self, adapter: ContractQueryAdapter, *, max_concurrency: int = 8) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._adapter = adapter
        self._max_concurrency = max_concurrency
        self._gens = RequestGenerations()
        self._profiles: dict[str, UserProfile] = {}
        self._stale: set[str] = set()

    def known_profiles(self) -> list[UserProfile]:
        """Every visible profile, in first-seen order."""
        return list(self._profiles.values())

    def cached(self, address: str) -> UserProfile | None:
        return self._profiles.get(normalize_address(address))

    def invalidate(self, address: str | None = None) -> None:
        """Mark one (or every) cached profile for re-fetch and supersede in-flight reads."""
        if address is None:
            self._stale.update(self._profiles)
            self._gens.invalidate()
        else:
            key = normalize_address(address)
            if key in self._profiles:
                self._stale.add(key)
            self._gens.invalidate(key)

    async def refresh(self) -> FetchResult[dict[str, UserProfile]]:
        """Re-fetch every known profile."""
        return await self.get_or_fetch_many(list(self._profiles), force=True)

    async def _fetch(self, address: str) -> UserProfile:
        token = self._gens.begin(address)
        raw = await self._adapter.read_field("getUserProfile", address)
        profile = UserProfile.from_chain(address, raw)
        if self._gens.is_current(address, token):
            self._profiles[address] = profile
            self._stale.discard(address)
        else:
            logger.debug("profile_fetch_superseded", address=address)
        return profile

    async def get_profile(self, address: str) -> FetchResult[UserProfile]:
        """Fetch one profile now (never served from cache)."""
        key = normalize_address(address)
        try:
            profile = await self._fetch(key)
        except ReadModelError as e:
            logger.warning("profile_fetch_failed", address=key, error_kind=e.kind.value, error=e.message)
            return FetchResult.err(e, data=self._profiles.get(key))
        return FetchResult.ok(profile, stale=self._profiles.get(key) is not profile)

    async def get_or_fetch_many(
        self,
        addresses: Iterable[str],
        *,
        force: bool = False,
    ) -> FetchResult[dict[str, UserProfile]]:
        """
        Profiles for the given addresses, keyed by checksum address in input order.

        Duplicates (in any case) cost one read; fresh cache entries cost none
        unless force is set.
        """
        unique: list[str] = []
        seen: set[str] = set()
        for address in addresses:
            key = normalize_address(address)
            if key not in seen:
                seen.add(key)
                unique.append(key)

        to_fetch = [a for a in unique if force or a not in self._profiles or a in self._stale]
        failed: list[str] = []
        fetched: dict[str, UserProfile] = {}
        sem = asyncio.Semaphore(self._max_concurrency)

        async def fetch_one(address: str) -> None:
            async with sem:
                try:
                    fetched[address] = await self._fetch(address)
                except ReadModelError as e:
                    logger.warning("profile_fetch_failed", address=address, error_kind=e.kind.value, error=e.message)
                    failed.append(address)

        await asyncio.gather(*(fetch_one(a) for a in to_fetch))
        logger.debug("profiles_batch_loaded", requested=len(unique), fetched=len(to_fetch) - len(failed))

        out: dict[str, UserProfile] = {}
        for address in unique:
            profile = self._profiles.get(address) or fetched.get(address)
            if profile is not None:
                out[address] = profile
        return FetchResult.partial(out, [a for a in unique if a in failed])
