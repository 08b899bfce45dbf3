"""
Marketplace read model — wires the adapter, repositories, aggregators,
mutation dispatcher and account watcher into one object.

Responsibilities:
- Build every component from Settings (or from an injected adapter in tests).
- Track the current account: fixed when a sender is configured, otherwise
  followed through the AccountWatcher; an account switch invalidates history.
- Offer the purchase flow with its balance and amount pre-check.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from backend_enerxchange.analytics.aggregates import AnalyticsAggregator
from backend_enerxchange.analytics.history import TransactionHistoryAggregator
from backend_enerxchange.config.settings import Settings
from backend_enerxchange.contract.account import AccountWatcher, Subscription
from backend_enerxchange.contract.adapter import ContractQueryAdapter, Web3ContractAdapter
from backend_enerxchange.core.exceptions import WalletConnectionError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.mutations.catalog import HISTORY, LISTINGS, PLATFORM, PROFILES, check_purchase
from backend_enerxchange.mutations.dispatcher import MutationDispatcher, MutationOutcome
from backend_enerxchange.read_model.listings import ListingRepository
from backend_enerxchange.read_model.platform import PlatformStateRepository
from backend_enerxchange.read_model.profiles import UserProfileRepository

logger = get_logger(__name__)


class MarketplaceReadModel:
    def __init__(
        self,
        adapter: ContractQueryAdapter,
        settings: Settings,
        *,
        account_watcher: AccountWatcher | None = None,
        account: str | None = None,
    ) -> None:
        self.adapter = adapter
        self.settings = settings
        self.listings = ListingRepository(
            adapter,
            max_concurrency=settings.scan_concurrency,
            default_energy_source=settings.default_energy_source,
        )
        self.profiles = UserProfileRepository(adapter, max_concurrency=settings.scan_concurrency)
        self.platform = PlatformStateRepository(adapter)
        self.history = TransactionHistoryAggregator(
            adapter,
            self.listings,
            default_energy_source=settings.default_energy_source,
        )
        self.analytics = AnalyticsAggregator(
            self.listings,
            self.profiles,
            timezone=settings.analytics_timezone,
            top_n=settings.top_producers,
        )
        self.mutations = MutationDispatcher(
            adapter,
            {
                LISTINGS: self.listings,
                PROFILES: self.profiles,
                PLATFORM: self.platform,
                HISTORY: self.history,
            },
            confirmation_timeout_sec=settings.confirmation_timeout_sec,
        )
        self.account_watcher = account_watcher
        self._fixed_account = account
        self._subscription: Subscription | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MarketplaceReadModel":
        adapter = Web3ContractAdapter.from_settings(settings)
        watcher = None
        if not adapter.account_address:
            watcher = AccountWatcher(
                settings.wallet_rpc_url or settings.rpc_url,
                poll_interval_sec=settings.account_poll_sec,
                request_timeout_sec=settings.call_timeout_sec,
            )
        return cls(adapter, settings, account_watcher=watcher, account=adapter.account_address)

    @property
    def current_account(self) -> str | None:
        if self._fixed_account:
            return self._fixed_account
        if self.account_watcher is not None:
            return self.account_watcher.current
        return None

    def require_account(self) -> str:
        account = self.current_account
        if not account:
            raise WalletConnectionError("No account available. Please connect your wallet.")
        return account

    async def _on_account_changed(self, address: str | None) -> None:
        # per-address caches stay; only the "my history" view follows the account
        self.history.invalidate()
        logger.info("read_model_account_switched", address=address)

    async def start(self) -> None:
        connect = getattr(self.adapter, "connect", None)
        if connect is not None:
            await connect()
        if self.account_watcher is not None:
            self._subscription = self.account_watcher.subscribe(self._on_account_changed)
            await self.account_watcher.start()

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self.account_watcher is not None:
            await self.account_watcher.stop()
        close = getattr(self.adapter, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "MarketplaceReadModel":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def purchase(
        self,
        listing_id: int,
        amount: Decimal | str | int,
        *,
        form: str | None = None,
    ) -> MutationOutcome:
        """
        Pre-check then submit purchaseEnergy.

        The listing and the buyer's balance are re-read right before the check;
        ValueError reports a failed pre-check, nothing is submitted then.
        """
        buyer = self.require_account()
        listing = (await self.listings.fetch_listing(listing_id)).unwrap()
        if listing is None:
            raise ValueError(f"listing {listing_id} not found")
        balance = (await self.platform.get_balance(buyer)).unwrap()
        check_purchase(listing, amount, balance)
        return await self.mutations.submit_and_refresh(
            "purchaseEnergy",
            (listing_id, amount),
            form=form or f"purchase:{listing_id}",
        )
