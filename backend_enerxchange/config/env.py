"""
Environment variable loading and validation for EnerXchange.

- ENERX_RPC_URL: JSON-RPC endpoint of the chain node (default: local node)
- ENERX_WALLET_RPC_URL: endpoint answering eth_accounts for the connected wallet (default: ENERX_RPC_URL)
- ENERX_CONTRACT_ADDRESS: deployed EnerXchange contract
- ENERX_ACCOUNT_ADDRESS / ENERX_PRIVATE_KEY: sender for contract writes
- ENERX_ABI_PATH: optional ABI exported from the deployment
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_enerxchange/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_RPC_URL = "http://127.0.0.1:8545"
DEFAULT_CALL_TIMEOUT_SEC = 30.0
DEFAULT_CONFIRMATION_TIMEOUT_SEC = 120.0
DEFAULT_SCAN_CONCURRENCY = 8
DEFAULT_ACCOUNT_POLL_SEC = 2.0
DEFAULT_ENERGY_SOURCE = "solar"
DEFAULT_TOP_PRODUCERS = 5


def load_enerx_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    load_dotenv(_ENV_PATH)


def _get_str(name: str, default: str = "") -> str:
    load_enerx_env()
    return (os.getenv(name) or default).strip()


def _get_float(name: str, default: float) -> float:
    raw = _get_str(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


def _get_int(name: str, default: int) -> int:
    raw = _get_str(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return value


def get_rpc_url() -> str:
    """Return ENERX_RPC_URL, or the local node default."""
    return _get_str("ENERX_RPC_URL", DEFAULT_RPC_URL)


def get_wallet_rpc_url() -> str:
    """
    Return the endpoint polled for eth_accounts.
    Order: ENERX_WALLET_RPC_URL > ENERX_RPC_URL > local node default.
    """
    return _get_str("ENERX_WALLET_RPC_URL") or get_rpc_url()


def get_contract_address() -> str:
    """Return ENERX_CONTRACT_ADDRESS; empty when not configured."""
    return _get_str("ENERX_CONTRACT_ADDRESS")


def get_account_address() -> str:
    """Return ENERX_ACCOUNT_ADDRESS (unlocked provider account used for writes); may be empty."""
    return _get_str("ENERX_ACCOUNT_ADDRESS")


def get_private_key() -> str:
    """Return ENERX_PRIVATE_KEY; takes precedence over ENERX_ACCOUNT_ADDRESS for writes."""
    return _get_str("ENERX_PRIVATE_KEY")


def get_abi_path() -> str:
    """Optional path to the deployed contract ABI (JSON list or build artifact)."""
    return _get_str("ENERX_ABI_PATH")


def get_call_timeout_sec() -> float:
    return _get_float("ENERX_CALL_TIMEOUT_SEC", DEFAULT_CALL_TIMEOUT_SEC)


def get_confirmation_timeout_sec() -> float:
    return _get_float("ENERX_CONFIRMATION_TIMEOUT_SEC", DEFAULT_CONFIRMATION_TIMEOUT_SEC)


def get_scan_concurrency() -> int:
    """Max in-flight per-ID reads during a listing scan (at least 1)."""
    return max(1, _get_int("ENERX_SCAN_CONCURRENCY", DEFAULT_SCAN_CONCURRENCY))


def get_events_from_block() -> int:
    """First block scanned for EnergyListed / EnergyPurchased logs (deployment block)."""
    return _get_int("ENERX_EVENTS_FROM_BLOCK", 0)


def get_account_poll_sec() -> float:
    return _get_float("ENERX_ACCOUNT_POLL_SEC", DEFAULT_ACCOUNT_POLL_SEC)


def get_default_energy_source() -> str:
    """Energy source reported for listings whose payload carries none."""
    return _get_str("ENERX_DEFAULT_ENERGY_SOURCE", DEFAULT_ENERGY_SOURCE).lower()


def get_analytics_timezone() -> str:
    """IANA timezone used for date/hour buckets (default: UTC)."""
    return _get_str("ENERX_ANALYTICS_TZ", "UTC")


def get_top_producers_count() -> int:
    return max(1, _get_int("ENERX_TOP_PRODUCERS", DEFAULT_TOP_PRODUCERS))


def get_api_host() -> str:
    return _get_str("API_HOST", "0.0.0.0")


def get_api_port() -> int:
    return _get_int("API_PORT", 8000)


def print_enerx_startup(script_name: str) -> None:
    """Print RPC endpoint and contract address at script start."""
    rpc = get_rpc_url()
    # Mask API key in URL if present
    if "api-key=" in rpc:
        rpc = rpc.split("api-key=")[0] + "api-key=***"
    contract = get_contract_address() or "<unset>"
    print(f"[enerx] {script_name} | contract={contract} | rpc={rpc}")
