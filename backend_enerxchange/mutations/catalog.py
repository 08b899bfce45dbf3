"""
Catalog of contract writes: argument encoding and affected repositories.

Responsibilities:
- Encode user-facing arguments for each write (token amounts to 10^18-scaled
  integers, addresses to checksum form, comma-separated lists for adminMint).
- Name the repositories each write makes stale, so the dispatcher knows what
  to refresh after confirmation.
- check_purchase(): the purchase form's client-side pre-check.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Sequence

from backend_enerxchange.contract.addresses import normalize_address
from backend_enerxchange.contract.models import Listing
from backend_enerxchange.contract.units import format_amount, to_decimal, to_wei

LISTINGS = "listings"
PROFILES = "profiles"
PLATFORM = "platform"
HISTORY = "history"


def _uint(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("expected a non-negative integer, got bool")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValueError(f"expected a non-negative integer, got {value!r}")
        return int(value)
    if not isinstance(value, int) or value < 0:
        raise ValueError(f"expected a non-negative integer, got {value!r}")
    return value


def _amount(value: Any) -> int:
    return to_wei(value)


def _address(value: Any) -> str:
    return normalize_address(str(value))


def _text(value: Any) -> str:
    text = str(value).strip()
    if not text:
        raise ValueError("expected non-empty text")
    return text


def _split(value: Any) -> list[Any]:
    """Accept a list or a comma-separated string (the admin form's input)."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return list(value)


def _address_list(value: Any) -> list[str]:
    return [_address(v) for v in _split(value)]


def _amount_list(value: Any) -> list[int]:
    return [_amount(v) for v in _split(value)]


@dataclass(frozen=True)
class MutationSpec:
    method: str
    encoders: tuple[Callable[[Any], Any], ...]
    affected: tuple[str, ...]
    admin: bool = False
    """Restricted to the contract owner (the contract enforces it)."""

    def encode(self, args: Sequence[Any]) -> tuple[Any, ...]:
        if len(args) != len(self.encoders):
            raise ValueError(f"{self.method} takes {len(self.encoders)} argument(s), got {len(args)}")
        encoded = tuple(enc(arg) for enc, arg in zip(self.encoders, args))
        if self.method == "adminMint" and len(encoded[0]) != len(encoded[1]):
            raise ValueError("adminMint needs one amount per recipient")
        return encoded


def _spec(method: str, encoders: tuple[Callable[[Any], Any], ...], affected: tuple[str, ...], admin: bool = False) -> MutationSpec:
    return MutationSpec(method, encoders, affected, admin)


MUTATIONS: dict[str, MutationSpec] = {
    s.method: s
    for s in (
        # listEnergy(amount, pricePerUnit, duration seconds, minimumPurchase)
        _spec("listEnergy", (_amount, _amount, _uint, _amount), (LISTINGS, PLATFORM, HISTORY)),
        _spec("purchaseEnergy", (_uint, _amount), (LISTINGS, PROFILES, PLATFORM, HISTORY)),
        _spec("cancelListing", (_uint,), (LISTINGS, PLATFORM, HISTORY)),
        _spec("verifyUser", (_address,), (PROFILES,), admin=True),
        _spec("invalidateCertification", (_address,), (PROFILES,), admin=True),
        _spec("mintEnergy", (_address, _amount), (PLATFORM,)),
        _spec("adminMint", (_address_list, _amount_list), (PLATFORM,), admin=True),
        _spec("transferFrom", (_address, _address, _amount), (PLATFORM,)),
        _spec("transferOwnership", (_address,), (PLATFORM,), admin=True),
        _spec("pause", (), (PLATFORM,), admin=True),
        _spec("unpause", (), (PLATFORM,), admin=True),
        _spec("setPlatformFee", (_uint,), (PLATFORM,), admin=True),
        _spec("authorizeSmartMeter", (_address,), (PLATFORM,), admin=True),
        _spec("updateUserCertification", (_address, _text, _text), (PROFILES,)),
    )
}


def get_mutation(method: str) -> MutationSpec:
    try:
        return MUTATIONS[method]
    except KeyError:
        raise ValueError(f"unsupported mutation: {method}") from None


def check_purchase(listing: Listing, amount: Decimal | str | int, balance: Decimal) -> Decimal:
    """
    Validate a purchase before submitting it; return the total cost.

    Raises ValueError when the listing is inactive, the amount is outside
    [minimum_purchase, amount] or the balance does not cover the cost.
    """
    qty = to_decimal(amount)
    if not listing.active:
        raise ValueError(f"listing {listing.id} is not active")
    if qty <= 0:
        raise ValueError("purchase amount must be positive")
    if qty < listing.minimum_purchase or qty > listing.amount:
        raise ValueError(
            f"Purchase amount must be between {format_amount(listing.minimum_purchase)} "
            f"and {format_amount(listing.amount)} units."
        )
    cost = qty * listing.price_per_unit
    if balance < cost:
        raise ValueError("Insufficient balance to make this purchase.")
    return cost
