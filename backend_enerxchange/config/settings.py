"""
Application settings and environment configuration.

Responsibilities:
- Collect the typed getters from config.env into one frozen Settings object.
- Validate cross-field requirements (a contract address is required to read).
- Expose get_settings() for the API server, the read-model façade and main.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from backend_enerxchange.config import env


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one read-model process."""

    rpc_url: str
    wallet_rpc_url: str
    contract_address: str
    account_address: str
    private_key: str
    abi_path: str
    call_timeout_sec: float
    confirmation_timeout_sec: float
    scan_concurrency: int
    events_from_block: int
    account_poll_sec: float
    default_energy_source: str
    analytics_timezone: str
    top_producers: int
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @property
    def can_submit(self) -> bool:
        """True when writes have a sender (signing key or unlocked account)."""
        return bool(self.private_key or self.account_address)

    def require_contract(self) -> str:
        if not self.contract_address:
            raise ValueError("ENERX_CONTRACT_ADDRESS must be set")
        return self.contract_address


def load_settings() -> Settings:
    """Build Settings from the environment (uncached; used by tests)."""
    return Settings(
        rpc_url=env.get_rpc_url(),
        wallet_rpc_url=env.get_wallet_rpc_url(),
        contract_address=env.get_contract_address(),
        account_address=env.get_account_address(),
        private_key=env.get_private_key(),
        abi_path=env.get_abi_path(),
        call_timeout_sec=env.get_call_timeout_sec(),
        confirmation_timeout_sec=env.get_confirmation_timeout_sec(),
        scan_concurrency=env.get_scan_concurrency(),
        events_from_block=env.get_events_from_block(),
        account_poll_sec=env.get_account_poll_sec(),
        default_energy_source=env.get_default_energy_source(),
        analytics_timezone=env.get_analytics_timezone(),
        top_producers=env.get_top_producers_count(),
        api_host=env.get_api_host(),
        api_port=env.get_api_port(),
    )


@lru_cache
def get_settings() -> Settings:
    """
    Return the current application settings.

    Cached for the process lifetime; call get_settings.cache_clear() after
    changing the environment.
    """
    return load_settings()
