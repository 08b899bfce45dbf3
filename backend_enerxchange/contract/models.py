"""
Data models for contract read results and emitted events.

Responsibilities:
- Define frozen dataclasses for listings, user profiles, platform state,
  decoded events and write receipts.
- Decode raw contract values at the boundary: 10^18-scaled integers become
  exact Decimals, Unix seconds become aware UTC datetimes, addresses are
  checksummed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping, Sequence

from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.units import from_wei, plain


def _field(raw: Mapping[str, Any] | Sequence[Any], name: str, index: int, default: Any = None) -> Any:
    """Read a struct member by ABI name (mapping results) or position (tuple results)."""
    if isinstance(raw, Mapping):
        return raw.get(name, default)
    if index < len(raw):
        return raw[index]
    return default


def to_datetime(seconds: int | None) -> datetime | None:
    """Unix seconds to aware UTC datetime; 0 / None mean 'never'."""
    if not seconds:
        return None
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Listing:
    """
    One energy listing as returned by energyListings(id).

    Inactive once cancelled or fully purchased; expiration is informational,
    the contract enforces it.
    """

    id: int
    seller: str
    amount: Decimal
    """Remaining energy tokens offered."""
    price_per_unit: Decimal
    minimum_purchase: Decimal
    expiration_time: datetime | None
    creation_time: datetime | None
    active: bool
    energy_source: str | None = None
    """Source label when the contract payload carries one; None otherwise."""

    @classmethod
    def from_chain(cls, listing_id: int, raw: Mapping[str, Any] | Sequence[Any]) -> "Listing":
        """Build from an energyListings / getListingDetails result."""
        source = _field(raw, "energySource", 7)
        return cls(
            id=int(listing_id),
            seller=normalize_address(str(_field(raw, "seller", 0))),
            amount=from_wei(int(_field(raw, "amount", 1, 0))),
            price_per_unit=from_wei(int(_field(raw, "pricePerUnit", 2, 0))),
            expiration_time=to_datetime(_field(raw, "expirationTime", 3)),
            active=bool(_field(raw, "active", 4, False)),
            minimum_purchase=from_wei(int(_field(raw, "minimumPurchase", 5, 0))),
            creation_time=to_datetime(_field(raw, "creationTime", 6)),
            energy_source=str(source).strip().lower() if source else None,
        )

    @property
    def total_value(self) -> Decimal:
        """Price of buying the whole remaining amount."""
        return self.amount * self.price_per_unit

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expiration_time is None:
            return False
        return self.expiration_time <= (now or datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "seller": self.seller,
            "amount": plain(self.amount),
            "price_per_unit": plain(self.price_per_unit),
            "minimum_purchase": plain(self.minimum_purchase),
            "expiration_time": _iso(self.expiration_time),
            "creation_time": _iso(self.creation_time),
            "active": self.active,
            "energy_source": self.energy_source,
        }


@dataclass(frozen=True)
class UserProfile:
    """Verification, reputation and certification record for one address."""

    address: str
    is_verified: bool
    total_energy_traded: Decimal
    reputation_score: Decimal
    last_activity_time: datetime | None
    certification_ipfs_hash: str
    certification_timestamp: datetime | None
    certification_type: str
    certification_valid: bool

    @classmethod
    def from_chain(cls, address: str, raw: Mapping[str, Any] | Sequence[Any]) -> "UserProfile":
        """Build from a getUserProfile(address) result."""
        return cls(
            address=normalize_address(address),
            is_verified=bool(_field(raw, "isVerified", 0, False)),
            total_energy_traded=from_wei(int(_field(raw, "totalEnergyTraded", 1, 0))),
            reputation_score=from_wei(int(_field(raw, "reputationScore", 2, 0))),
            last_activity_time=to_datetime(_field(raw, "lastActivityTime", 3)),
            certification_ipfs_hash=str(_field(raw, "certificationIPFSHash", 4, "") or ""),
            certification_timestamp=to_datetime(_field(raw, "certificationTimestamp", 5)),
            certification_type=str(_field(raw, "certificationType", 6, "") or ""),
            certification_valid=bool(_field(raw, "certificationValid", 7, False)),
        )

    @property
    def has_certification(self) -> bool:
        return bool(self.certification_ipfs_hash)

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "is_verified": self.is_verified,
            "total_energy_traded": plain(self.total_energy_traded),
            "reputation_score": plain(self.reputation_score),
            "last_activity_time": _iso(self.last_activity_time),
            "certification_ipfs_hash": self.certification_ipfs_hash,
            "certification_timestamp": _iso(self.certification_timestamp),
            "certification_type": self.certification_type,
            "certification_valid": self.certification_valid,
        }


@dataclass(frozen=True)
class PlatformState:
    """Contract-wide settings shown on the admin dashboard."""

    platform_fee: int
    """Raw fee value as stored by the contract (not token-scaled)."""
    fee_collector: str
    paused: bool
    total_supply: Decimal
    next_listing_id: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform_fee": self.platform_fee,
            "fee_collector": self.fee_collector,
            "paused": self.paused,
            "total_supply": plain(self.total_supply),
            "next_listing_id": self.next_listing_id,
        }


@dataclass(frozen=True)
class ContractEvent:
    """
    One decoded log entry.

    Events carry no sequence number beyond (block_number, log_index); the
    timestamp is the containing block's timestamp.
    """

    name: str
    args: Mapping[str, Any]
    block_number: int
    log_index: int
    transaction_hash: str
    timestamp: int
    """Block timestamp, Unix seconds."""

    @property
    def position(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class MutationReceipt:
    """Confirmed write."""

    tx_hash: str
    block_number: int
    gas_used: int = 0
    status: str = "success"
    logs: tuple[ContractEvent, ...] = field(default_factory=tuple)
