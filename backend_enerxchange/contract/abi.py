"""
EnerXchange contract ABI fragments used by the read model.

Only the functions and events the read model touches are declared. A full ABI
exported from the deployed contract can replace these through ENERX_ABI_PATH;
event signatures must match the deployment for log filters to find anything.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

READ_FUNCTIONS = (
    "nextListingId",
    "energyListings",
    "getListingDetails",
    "getUserProfile",
    "platformFee",
    "feeCollector",
    "paused",
    "totalSupply",
    "balanceOf",
    "allowance",
)

WRITE_FUNCTIONS = (
    "listEnergy",
    "purchaseEnergy",
    "cancelListing",
    "verifyUser",
    "invalidateCertification",
    "mintEnergy",
    "adminMint",
    "transferFrom",
    "transferOwnership",
    "pause",
    "unpause",
    "setPlatformFee",
    "authorizeSmartMeter",
    "updateUserCertification",
)

EVENT_LISTED = "EnergyListed"
EVENT_PURCHASED = "EnergyPurchased"


def _param(name: str, type_: str, indexed: bool | None = None) -> dict[str, Any]:
    out: dict[str, Any] = {"name": name, "type": type_}
    if indexed is not None:
        out["indexed"] = indexed
    return out


def _view(name: str, inputs: list[dict[str, Any]], outputs: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": inputs,
        "outputs": outputs,
    }


def _write(name: str, inputs: list[dict[str, Any]], outputs: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "nonpayable",
        "inputs": inputs,
        "outputs": outputs or [],
    }


LISTING_OUTPUTS = [
    _param("seller", "address"),
    _param("amount", "uint256"),
    _param("pricePerUnit", "uint256"),
    _param("expirationTime", "uint256"),
    _param("active", "bool"),
    _param("minimumPurchase", "uint256"),
    _param("creationTime", "uint256"),
]

PROFILE_OUTPUTS = [
    _param("isVerified", "bool"),
    _param("totalEnergyTraded", "uint256"),
    _param("reputationScore", "uint256"),
    _param("lastActivityTime", "uint256"),
    _param("certificationIPFSHash", "string"),
    _param("certificationTimestamp", "uint256"),
    _param("certificationType", "string"),
    _param("certificationValid", "bool"),
]

ENERX_ABI: list[dict[str, Any]] = [
    # reads
    _view("nextListingId", [], [_param("", "uint256")]),
    _view("energyListings", [_param("", "uint256")], LISTING_OUTPUTS),
    _view("getListingDetails", [_param("listingId", "uint256")], LISTING_OUTPUTS),
    _view("getUserProfile", [_param("user", "address")], PROFILE_OUTPUTS),
    _view("platformFee", [], [_param("", "uint256")]),
    _view("feeCollector", [], [_param("", "address")]),
    _view("paused", [], [_param("", "bool")]),
    _view("totalSupply", [], [_param("", "uint256")]),
    _view("balanceOf", [_param("account", "address")], [_param("", "uint256")]),
    _view("allowance", [_param("owner", "address"), _param("spender", "address")], [_param("", "uint256")]),
    # writes
    _write("listEnergy", [
        _param("amount", "uint256"),
        _param("pricePerUnit", "uint256"),
        _param("duration", "uint256"),
        _param("minimumPurchase", "uint256"),
    ]),
    _write("purchaseEnergy", [_param("listingId", "uint256"), _param("amount", "uint256")]),
    _write("cancelListing", [_param("listingId", "uint256")]),
    _write("verifyUser", [_param("user", "address")]),
    _write("invalidateCertification", [_param("user", "address")]),
    _write("mintEnergy", [_param("to", "address"), _param("amount", "uint256")]),
    _write("adminMint", [_param("recipients", "address[]"), _param("amounts", "uint256[]")]),
    _write(
        "transferFrom",
        [_param("from", "address"), _param("to", "address"), _param("amount", "uint256")],
        [_param("", "bool")],
    ),
    _write("transferOwnership", [_param("newOwner", "address")]),
    _write("pause", []),
    _write("unpause", []),
    _write("setPlatformFee", [_param("newFee", "uint256")]),
    _write("authorizeSmartMeter", [_param("meter", "address")]),
    _write("updateUserCertification", [
        _param("user", "address"),
        _param("ipfsHash", "string"),
        _param("certificationType", "string"),
    ]),
    # events
    {
        "type": "event",
        "name": EVENT_LISTED,
        "anonymous": False,
        "inputs": [
            _param("listingId", "uint256", indexed=True),
            _param("seller", "address", indexed=True),
            _param("amount", "uint256", indexed=False),
            _param("pricePerUnit", "uint256", indexed=False),
        ],
    },
    {
        "type": "event",
        "name": EVENT_PURCHASED,
        "anonymous": False,
        "inputs": [
            _param("listingId", "uint256", indexed=True),
            _param("buyer", "address", indexed=True),
            _param("amount", "uint256", indexed=False),
            _param("totalPrice", "uint256", indexed=False),
        ],
    },
]


def load_abi(path: str | Path | None = None) -> list[dict[str, Any]]:
    """
    Return the ABI from a JSON file (plain list or Hardhat/Truffle artifact with an "abi" key),
    or the built-in fragments when path is empty.
    """
    if not path:
        return ENERX_ABI
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return data["abi"]
    if isinstance(data, list):
        return data
    raise ValueError(f"Unrecognised ABI file shape: {path}")


def output_names(abi: list[dict[str, Any]], function_name: str) -> list[str]:
    """Output parameter names of a function (empty strings for unnamed outputs)."""
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == function_name:
            return [o.get("name", "") for o in entry.get("outputs", [])]
    raise KeyError(f"function {function_name} not in ABI")
