"""
Wallet account watcher — observable "current account" with scoped subscriptions.

Responsibilities:
- Poll the wallet provider's eth_accounts over JSON-RPC (httpx) and publish
  the first account whenever it changes (including to "no account").
- Deliver changes to subscribers (sync or async callbacks).
- Hand out Subscription handles that are released on teardown, so a consumer
  that goes away never keeps receiving notifications.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import httpx

from backend_enerxchange.contract.addresses import is_valid_address, normalize_address
from backend_enerxchange.enerx_logging import get_logger

logger = get_logger(__name__)

AccountCallback = Callable[[str | None], Awaitable[None]] | Callable[[str | None], None]

# JSON-RPC request id counter
_request_id = 0


def _next_id() -> int:
    global _request_id
    _request_id += 1
    return _request_id


class Subscription:
    """Registration of one callback; close() (or leaving the with-block) removes it."""

    def __init__(self, watcher: "AccountWatcher", callback: AccountCallback) -> None:
        self._watcher = watcher
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if self._active:
            self._active = False
            self._watcher._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class AccountWatcher:
    """
    Polling watcher for the wallet provider's selected account.

    Use as an async context manager to run the poll loop in the background:

        async with AccountWatcher(url) as watcher:
            with watcher.subscribe(on_change):
                ...
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        poll_interval_sec: float = 2.0,
        request_timeout_sec: float = 10.0,
        initial_account: str | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if poll_interval_sec <= 0:
            raise ValueError("poll_interval_sec must be positive")
        self._rpc_url = rpc_url.strip()
        self._poll_interval_sec = poll_interval_sec
        self._request_timeout = request_timeout_sec
        self._current: str | None = normalize_address(initial_account) if initial_account else None
        self._subscriptions: list[Subscription] = []
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def current(self) -> str | None:
        """Checksummed current account, or None when the wallet exposes none."""
        return self._current

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: AccountCallback) -> Subscription:
        sub = Subscription(self, callback)
        self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        try:
            self._subscriptions.remove(sub)
        except ValueError:
            pass

    async def set_account(self, address: str | None) -> bool:
        """Publish a new current account; return True if it changed."""
        new = normalize_address(address) if address else None
        if new == self._current:
            return False
        previous, self._current = self._current, new
        logger.info("account_changed", previous=previous, address=new)
        for sub in list(self._subscriptions):
            if sub.active:
                await self._dispatch(sub, new)
        return True

    async def _dispatch(self, sub: Subscription, address: str | None) -> None:
        cb = sub.callback
        try:
            result = cb(address)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.exception("account_callback_failed", address=address, error=str(e))

    async def poll_once(self, client: httpx.AsyncClient | None = None) -> str | None:
        """Fetch eth_accounts once and publish the result."""
        if client is None:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self._request_timeout)) as owned:
                accounts = await self._rpc_accounts(owned)
        else:
            accounts = await self._rpc_accounts(client)
        first = next((a for a in accounts if isinstance(a, str) and is_valid_address(a)), None)
        await self.set_account(first)
        return self._current

    async def _rpc_accounts(self, client: httpx.AsyncClient) -> list[Any]:
        """Perform the eth_accounts JSON-RPC call; raise on transport or RPC error."""
        body = {"jsonrpc": "2.0", "id": _next_id(), "method": "eth_accounts", "params": []}
        resp = await client.post(self._rpc_url, json=body)
        resp.raise_for_status()
        data = resp.json()
        if "error" in data:
            err = data["error"]
            raise RuntimeError(f"eth_accounts error: {err.get('message', err)} (code={err.get('code')})")
        result = data.get("result")
        return result if isinstance(result, list) else []

    async def run(self) -> None:
        """Poll until stop() is called. Transport errors are logged and retried next cycle."""
        logger.info("account_watcher_started", rpc_url=self._rpc_url, poll_interval_sec=self._poll_interval_sec)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._request_timeout)) as client:
            while not self._stop_event.is_set():
                try:
                    await self.poll_once(client)
                except (httpx.HTTPError, RuntimeError, ValueError) as e:
                    logger.warning("account_poll_failed", error=str(e))
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_sec)
                except asyncio.TimeoutError:
                    pass
        logger.info("account_watcher_stopped")

    async def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop polling and release every subscription."""
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        for sub in list(self._subscriptions):
            sub.close()

    async def __aenter__(self) -> "AccountWatcher":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
