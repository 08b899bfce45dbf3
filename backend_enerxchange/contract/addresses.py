"""Address validation and normalisation (EIP-55 checksum)."""

from __future__ import annotations

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_valid_address(address: str) -> bool:
    """Return True if address is a 20-byte hex address (any case)."""
    try:
        return Web3.is_address((address or "").strip())
    except (TypeError, ValueError):
        return False


def normalize_address(address: str) -> str:
    """Return the checksum form; raise ValueError for anything that is not an address."""
    raw = (address or "").strip()
    if not raw:
        raise ValueError("address must be non-empty")
    if not Web3.is_address(raw):
        raise ValueError(f"Invalid address: {raw}")
    return Web3.to_checksum_address(raw)


def short_address(address: str) -> str:
    """0x1234...abcd form used in log lines and producer tables."""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"
