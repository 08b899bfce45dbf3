"""
Pytest fixtures for EnerXchange read-model tests.

FakeContractAdapter keeps contract state in memory and implements the adapter
interface, so repositories, aggregators, the dispatcher and the API run without
a chain node.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

import pytest

from backend_enerxchange.config.settings import Settings
from backend_enerxchange.contract.abi import EVENT_LISTED, EVENT_PURCHASED
from backend_enerxchange.contract.addresses import ZERO_ADDRESS, normalize_address
from backend_enerxchange.contract.models import ContractEvent, MutationReceipt
from backend_enerxchange.core.exceptions import ReadModelError

WEI = 10**18
BASE_TS = 1_700_000_000  # 2023-11-14 22:13:20 UTC


def addr(n: int) -> str:
    """Digit-only address (already in checksum form)."""
    return "0x" + str(n).rjust(40, "0")


SELLER_A = addr(1)
SELLER_B = addr(2)
BUYER = addr(3)

EMPTY_LISTING = {
    "seller": ZERO_ADDRESS,
    "amount": 0,
    "pricePerUnit": 0,
    "expirationTime": 0,
    "active": False,
    "minimumPurchase": 0,
    "creationTime": 0,
}

EMPTY_PROFILE = {
    "isVerified": False,
    "totalEnergyTraded": 0,
    "reputationScore": 0,
    "lastActivityTime": 0,
    "certificationIPFSHash": "",
    "certificationTimestamp": 0,
    "certificationType": "",
    "certificationValid": False,
}


class FakePendingMutation:
    def __init__(self, tx_hash: str, error: ReadModelError | None = None, gate: asyncio.Event | None = None) -> None:
        self.tx_hash = tx_hash
        self._error = error
        self._gate = gate

    async def wait(self, timeout: float | None = None) -> MutationReceipt:
        if self._gate is not None:
            await self._gate.wait()
        if self._error is not None:
            raise self._error
        return MutationReceipt(tx_hash=self.tx_hash, block_number=1)


class FakeContractAdapter:
    """In-memory contract; records every call for call-count assertions."""

    def __init__(self) -> None:
        self.listings: dict[int, dict[str, Any]] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.events: dict[str, list[ContractEvent]] = {EVENT_LISTED: [], EVENT_PURCHASED: []}
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.platform: dict[str, Any] = {
            "platformFee": 2,
            "feeCollector": addr(99),
            "paused": False,
            "totalSupply": 1_000 * WEI,
        }
        self.failures: dict[tuple[Any, ...], ReadModelError] = {}
        self.gates: dict[tuple[Any, ...], list[asyncio.Event]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.submitted: list[tuple[str, tuple[Any, ...]]] = []
        self.submit_error: ReadModelError | None = None
        self.confirm_error: ReadModelError | None = None
        self.confirm_gate: asyncio.Event | None = None
        self.on_submit: Callable[[str, tuple[Any, ...]], None] | None = None

    # --- setup helpers

    def add_listing(
        self,
        seller: str,
        amount: int | float = 10,
        price: int | float = 1,
        *,
        active: bool = True,
        minimum: int | float = 1,
        created: int = BASE_TS,
        listing_id: int | None = None,
    ) -> int:
        listing_id = len(self.listings) if listing_id is None else listing_id
        self.listings[listing_id] = {
            "seller": seller,
            "amount": int(amount * WEI),
            "pricePerUnit": int(price * WEI),
            "expirationTime": created + 86_400,
            "active": active,
            "minimumPurchase": int(minimum * WEI),
            "creationTime": created,
        }
        return listing_id

    def set_profile(self, address: str, traded: int = 0, *, verified: bool = False, reputation: int = 0) -> None:
        self.profiles[normalize_address(address)] = {
            **EMPTY_PROFILE,
            "isVerified": verified,
            "totalEnergyTraded": traded * WEI,
            "reputationScore": reputation * WEI,
        }

    def add_event(self, name: str, block: int, timestamp: int, log_index: int = 0, **args: Any) -> None:
        self.events[name].append(
            ContractEvent(
                name=name,
                args=args,
                block_number=block,
                log_index=log_index,
                transaction_hash=f"0x{block:04x}{log_index:04x}",
                timestamp=timestamp,
            )
        )

    def gate(self, *key: Any) -> asyncio.Event:
        """Block the next call matching key until the returned event is set."""
        event = asyncio.Event()
        self.gates.setdefault(tuple(key), []).append(event)
        return event

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    # --- adapter interface

    def _value(self, name: str, args: tuple[Any, ...]) -> Any:
        if name == "nextListingId":
            return max(self.listings, default=-1) + 1
        if name in ("energyListings", "getListingDetails"):
            return dict(self.listings.get(args[0], EMPTY_LISTING))
        if name == "getUserProfile":
            return dict(self.profiles.get(normalize_address(args[0]), EMPTY_PROFILE))
        if name == "balanceOf":
            return self.balances.get(normalize_address(args[0]), 0)
        if name == "allowance":
            return self.allowances.get((normalize_address(args[0]), normalize_address(args[1])), 0)
        return self.platform[name]

    async def read_field(self, name: str, *args: Any) -> Any:
        key = (name, *args)
        self.calls.append(key)
        if key in self.failures:
            raise self.failures[key]
        # value is captured before any gate so a delayed call returns old data
        value = self._value(name, args)
        pending = self.gates.get(key)
        if pending:
            await pending.pop(0).wait()
        return value

    async def read_event_log(
        self,
        event_name: str,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[ContractEvent]:
        key = ("events", event_name)
        self.calls.append(key)
        if key in self.failures:
            raise self.failures[key]
        out = []
        for event in self.events[event_name]:
            if argument_filters and any(
                normalize_address(str(event.args.get(k))) != normalize_address(str(v))
                for k, v in argument_filters.items()
            ):
                continue
            out.append(event)
        pending = self.gates.get(key)
        if pending:
            await pending.pop(0).wait()
        return sorted(out, key=lambda e: e.position)

    async def submit(self, method: str, *args: Any) -> FakePendingMutation:
        self.submitted.append((method, args))
        if self.submit_error is not None:
            raise self.submit_error
        if self.on_submit is not None and self.confirm_error is None:
            self.on_submit(method, args)
        return FakePendingMutation(f"0x{len(self.submitted):064x}", self.confirm_error, self.confirm_gate)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "rpc_url": "http://127.0.0.1:8545",
        "wallet_rpc_url": "",
        "contract_address": addr(500),
        "account_address": BUYER,
        "private_key": "",
        "abi_path": "",
        "call_timeout_sec": 5.0,
        "confirmation_timeout_sec": 5.0,
        "scan_concurrency": 4,
        "events_from_block": 0,
        "account_poll_sec": 1.0,
        "default_energy_source": "solar",
        "analytics_timezone": "UTC",
        "top_producers": 5,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def adapter() -> FakeContractAdapter:
    return FakeContractAdapter()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def read_model(adapter, settings):
    from backend_enerxchange.read_model.market import MarketplaceReadModel

    return MarketplaceReadModel(adapter, settings, account=settings.account_address)


@pytest.fixture
def client(read_model):
    """FastAPI TestClient over a read model backed by the in-memory adapter."""
    from fastapi.testclient import TestClient

    from backend_enerxchange.api_server.server import create_app

    return TestClient(create_app(read_model))
