"""
Contract query adapter — uniform async access to the EnerXchange contract.

Responsibilities:
- Call view functions by name and return decoded values (multi-output results
  keyed by ABI output name).
- Read event logs with argument filters, ordered by (block, log index), each
  carrying its block timestamp.
- Submit state-changing calls (locally signed or from an unlocked provider
  account) and await confirmation.
- Bound every call by a timeout and translate web3 failures into the
  read-model error taxonomy.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Protocol

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
)

from backend_enerxchange.config.settings import Settings
from backend_enerxchange.contract.abi import load_abi, output_names
from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import ContractEvent, MutationReceipt
from backend_enerxchange.core.exceptions import (
    CallReverted,
    CallTimeout,
    ReadModelError,
    WalletConnectionError,
)
from backend_enerxchange.enerx_logging import get_logger

logger = get_logger(__name__)

DEFAULT_CALL_TIMEOUT_SEC = 30.0
DEFAULT_CONFIRMATION_TIMEOUT_SEC = 120.0
RECEIPT_POLL_LATENCY_SEC = 1.0


class PendingMutation(Protocol):
    """A submitted write whose confirmation has not been awaited yet."""

    tx_hash: str

    async def wait(self, timeout: float | None = None) -> MutationReceipt: ...


class ContractQueryAdapter(Protocol):
    """What the repositories and the mutation dispatcher need from the contract."""

    async def read_field(self, name: str, *args: Any) -> Any: ...

    async def read_event_log(
        self,
        event_name: str,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[ContractEvent]: ...

    async def submit(self, method: str, *args: Any) -> PendingMutation: ...


@contextmanager
def translate_errors(operation: str, timeout_sec: float | None = None) -> Iterator[None]:
    """Map web3 / transport exceptions raised in the block to ReadModelError subclasses."""
    try:
        yield
    except ReadModelError:
        raise
    # asyncio.TimeoutError is an OSError subclass on 3.11+; check it first
    except (asyncio.TimeoutError, TimeExhausted) as e:
        raise CallTimeout(
            f"{operation} did not complete within {timeout_sec}s",
            timeout_sec=timeout_sec,
            operation=operation,
        ) from e
    except ContractLogicError as e:
        reason = getattr(e, "message", None) or str(e)
        raise CallReverted(reason=reason, operation=operation) from e
    except BadFunctionCallOutput as e:
        raise CallReverted(reason="no contract code at address", operation=operation) from e
    except (ProviderConnectionError, OSError) as e:
        raise WalletConnectionError(operation=operation, error=str(e)) from e


def _to_hex(value: Any) -> str:
    if isinstance(value, str):
        return value
    return Web3.to_hex(value)


class Web3PendingMutation:
    """Handle for a broadcast transaction."""

    def __init__(self, w3: AsyncWeb3, method: str, tx_hash: str) -> None:
        self._w3 = w3
        self.method = method
        self.tx_hash = tx_hash

    async def wait(self, timeout: float | None = None) -> MutationReceipt:
        """Wait for the receipt; raise CallReverted when the transaction status is 0."""
        timeout = timeout or DEFAULT_CONFIRMATION_TIMEOUT_SEC
        with translate_errors(f"confirm:{self.method}", timeout):
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                self.tx_hash, timeout=timeout, poll_latency=RECEIPT_POLL_LATENCY_SEC
            )
        if receipt.get("status", 1) == 0:
            logger.warning("mutation_reverted_onchain", method=self.method, tx_hash=self.tx_hash)
            raise CallReverted(
                reason="transaction reverted",
                operation=self.method,
                tx_hash=self.tx_hash,
            )
        return MutationReceipt(
            tx_hash=self.tx_hash,
            block_number=int(receipt.get("blockNumber") or 0),
            gas_used=int(receipt.get("gasUsed") or 0),
            status="success",
        )


class Web3ContractAdapter:
    """
    ContractQueryAdapter over web3.py's AsyncWeb3.

    Writes are signed locally when a private key is configured; otherwise they
    are sent with eth_sendTransaction from the configured (or first unlocked)
    provider account.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        *,
        abi: list[dict[str, Any]] | None = None,
        account_address: str | None = None,
        private_key: str | None = None,
        call_timeout_sec: float = DEFAULT_CALL_TIMEOUT_SEC,
        events_from_block: int = 0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """
        Args:
            rpc_url: JSON-RPC HTTP endpoint of the node or wallet provider.
            contract_address: Deployed EnerXchange contract.
            abi: Contract ABI; defaults to the built-in fragments.
            account_address: Sender for writes when no private key is given.
            private_key: Hex private key used to sign writes locally.
            call_timeout_sec: Upper bound for every read and for submission.
            events_from_block: First block scanned by event queries.
            w3: Pre-built AsyncWeb3 instance (tests inject a mock here).
        """
        if not rpc_url.strip() and w3 is None:
            raise ValueError("rpc_url must be non-empty")
        if call_timeout_sec <= 0:
            raise ValueError("call_timeout_sec must be positive")
        self._rpc_url = rpc_url.strip()
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(self._rpc_url))
        self._abi = abi or load_abi()
        self._address = normalize_address(contract_address)
        self._contract = self._w3.eth.contract(address=self._address, abi=self._abi)
        self._call_timeout = call_timeout_sec
        self._events_from_block = events_from_block
        self._block_timestamps: dict[int, int] = {}

        self._signer: LocalAccount | None = None
        if private_key:
            self._signer = Account.from_key(private_key)
        self._account_address = normalize_address(account_address) if account_address else None
        if self._signer is not None:
            self._account_address = self._signer.address

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3ContractAdapter":
        settings.require_contract()
        return cls(
            settings.rpc_url,
            settings.contract_address,
            abi=load_abi(settings.abi_path),
            account_address=settings.account_address or None,
            private_key=settings.private_key or None,
            call_timeout_sec=settings.call_timeout_sec,
            events_from_block=settings.events_from_block,
        )

    @property
    def contract_address(self) -> str:
        return self._address

    @property
    def account_address(self) -> str | None:
        """Configured sender, if any."""
        return self._account_address

    async def connect(self) -> None:
        """Check the provider is reachable; raise WalletConnectionError otherwise."""
        with translate_errors("connect", self._call_timeout):
            ok = await asyncio.wait_for(self._w3.is_connected(), timeout=self._call_timeout)
        if not ok:
            raise WalletConnectionError(rpc_url=self._rpc_url)
        logger.info("contract_adapter_connected", rpc_url=self._rpc_url, contract=self._address)

    async def close(self) -> None:
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            try:
                await disconnect()
            except OSError as e:
                logger.warning("contract_adapter_close_failed", error=str(e))

    async def read_field(self, name: str, *args: Any) -> Any:
        """Call a view function; multi-output results come back as a dict keyed by output name."""
        fn = getattr(self._contract.functions, name)
        with translate_errors(f"read:{name}", self._call_timeout):
            result = await asyncio.wait_for(fn(*args).call(), timeout=self._call_timeout)
        names = output_names(self._abi, name)
        if len(names) > 1 and all(names) and isinstance(result, (list, tuple)):
            return dict(zip(names, result))
        return result

    async def read_event_log(
        self,
        event_name: str,
        argument_filters: Mapping[str, Any] | None = None,
    ) -> list[ContractEvent]:
        """Return matching events from the configured start block, oldest first."""
        event = getattr(self._contract.events, event_name)
        filters = dict(argument_filters) if argument_filters else None
        with translate_errors(f"events:{event_name}", self._call_timeout):
            logs = await asyncio.wait_for(
                event.get_logs(argument_filters=filters, from_block=self._events_from_block),
                timeout=self._call_timeout,
            )
        logs = sorted(logs, key=lambda log: (log["blockNumber"], log["logIndex"]))
        out: list[ContractEvent] = []
        for log in logs:
            block_number = int(log["blockNumber"])
            out.append(
                ContractEvent(
                    name=event_name,
                    args=dict(log["args"]),
                    block_number=block_number,
                    log_index=int(log["logIndex"]),
                    transaction_hash=_to_hex(log["transactionHash"]),
                    timestamp=await self._block_timestamp(block_number),
                )
            )
        logger.debug("contract_events_read", event_name=event_name, count=len(out))
        return out

    async def _block_timestamp(self, block_number: int) -> int:
        cached = self._block_timestamps.get(block_number)
        if cached is not None:
            return cached
        with translate_errors("get_block", self._call_timeout):
            block = await asyncio.wait_for(self._w3.eth.get_block(block_number), timeout=self._call_timeout)
        ts = int(block["timestamp"])
        self._block_timestamps[block_number] = ts
        return ts

    async def sender(self) -> str:
        """Account that signs writes: configured one, else the provider's first account."""
        if self._account_address:
            return self._account_address
        with translate_errors("accounts", self._call_timeout):
            accounts = await asyncio.wait_for(self._w3.eth.accounts, timeout=self._call_timeout)
        if not accounts:
            raise WalletConnectionError("No account available. Please connect your wallet.")
        return normalize_address(accounts[0])

    async def submit(self, method: str, *args: Any) -> Web3PendingMutation:
        """Broadcast a write; confirmation is awaited through the returned handle."""
        fn = getattr(self._contract.functions, method)(*args)
        with translate_errors(f"submit:{method}", self._call_timeout):
            if self._signer is not None:
                tx_hash = await asyncio.wait_for(self._send_signed(fn), timeout=self._call_timeout)
            else:
                sender = await self.sender()
                tx_hash = await asyncio.wait_for(fn.transact({"from": sender}), timeout=self._call_timeout)
        tx_hex = _to_hex(tx_hash)
        logger.info("mutation_submitted", method=method, tx_hash=tx_hex)
        return Web3PendingMutation(self._w3, method, tx_hex)

    async def _send_signed(self, fn: Any) -> Any:
        signer = self._signer
        assert signer is not None
        eth = self._w3.eth
        # gas and EIP-1559 fee fields are filled by build_transaction
        tx = await fn.build_transaction(
            {
                "from": signer.address,
                "nonce": await eth.get_transaction_count(signer.address, "pending"),
                "chainId": await eth.chain_id,
            }
        )
        signed = signer.sign_transaction(tx)
        return await eth.send_raw_transaction(signed.raw_transaction)
