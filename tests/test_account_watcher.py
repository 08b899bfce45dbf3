"""
Tests for AccountWatcher: change notification, scoped subscriptions, eth_accounts polling.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import SELLER_A, SELLER_B

from backend_enerxchange.contract.account import AccountWatcher

RPC = "http://wallet.local"


def _transport(accounts_by_call):
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        body = request.read()
        assert b"eth_accounts" in body
        accounts = accounts_by_call[min(calls["n"], len(accounts_by_call) - 1)]
        calls["n"] += 1
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": accounts})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_change_notifies_subscribers_once():
    watcher = AccountWatcher(RPC)
    seen = []
    watcher.subscribe(seen.append)

    assert await watcher.set_account(SELLER_A) is True
    assert await watcher.set_account(SELLER_A.lower()) is False
    assert await watcher.set_account(None) is True

    assert seen == [SELLER_A, None]
    assert watcher.current is None


@pytest.mark.asyncio
async def test_closed_subscription_stops_receiving():
    watcher = AccountWatcher(RPC)
    seen = []

    async def on_change(address):
        seen.append(address)

    with watcher.subscribe(on_change) as sub:
        await watcher.set_account(SELLER_A)
        assert sub.active
    assert not sub.active
    assert watcher.subscriber_count == 0
    await watcher.set_account(SELLER_B)

    assert seen == [SELLER_A]


@pytest.mark.asyncio
async def test_failing_callback_does_not_block_others():
    watcher = AccountWatcher(RPC)
    seen = []

    def broken(address):
        raise RuntimeError("listener bug")

    watcher.subscribe(broken)
    watcher.subscribe(seen.append)
    await watcher.set_account(SELLER_A)

    assert seen == [SELLER_A]


@pytest.mark.asyncio
async def test_poll_once_publishes_first_account():
    watcher = AccountWatcher(RPC)
    seen = []
    watcher.subscribe(seen.append)
    transport = _transport([[SELLER_A.lower(), SELLER_B], [], [SELLER_B]])

    async with httpx.AsyncClient(transport=transport) as client:
        assert await watcher.poll_once(client) == SELLER_A
        assert await watcher.poll_once(client) is None
        assert await watcher.poll_once(client) == SELLER_B

    assert seen == [SELLER_A, None, SELLER_B]


@pytest.mark.asyncio
async def test_rpc_error_raises():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": 4100, "message": "unauthorized"}})

    watcher = AccountWatcher(RPC)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(RuntimeError, match="unauthorized"):
            await watcher.poll_once(client)


@pytest.mark.asyncio
async def test_stop_releases_subscriptions():
    watcher = AccountWatcher("http://127.0.0.1:9", poll_interval_sec=60)
    sub = watcher.subscribe(lambda address: None)
    async with watcher:
        pass
    assert not sub.active


def test_rejects_bad_config():
    with pytest.raises(ValueError):
        AccountWatcher("  ")
    with pytest.raises(ValueError):
        AccountWatcher(RPC, poll_interval_sec=0)


@pytest.mark.asyncio
async def test_account_switch_invalidates_history(adapter, settings, monkeypatch):
    from backend_enerxchange.read_model.market import MarketplaceReadModel

    watcher = AccountWatcher("http://127.0.0.1:9", poll_interval_sec=60, initial_account=SELLER_A)
    model = MarketplaceReadModel(adapter, settings, account_watcher=watcher)
    invalidated = []
    monkeypatch.setattr(model.history, "invalidate", lambda address=None: invalidated.append(address))

    async with model:
        assert model.current_account == SELLER_A
        await watcher.set_account(SELLER_B)
        assert model.current_account == SELLER_B

    assert invalidated == [None]
    assert watcher.subscriber_count == 0
