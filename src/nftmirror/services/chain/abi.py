"""Minimal ABIs of the registry and marketplace contracts.

Only the events the projector consumes and the `tokenURI` view are
declared. Event inputs are listed in declaration order, which is the
order of `EventRecord.args`.
"""

from typing import Any, Final


def _event(name: str, inputs: list[tuple[str, str, bool]]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": arg, "type": abi_type, "indexed": indexed}
            for arg, abi_type, indexed in inputs
        ],
    }


ERC721_ABI: Final[list[dict[str, Any]]] = [
    _event(
        "Transfer",
        [
            ("from", "address", True),
            ("to", "address", True),
            ("tokenId", "uint256", True),
        ],
    ),
    {
        "type": "function",
        "name": "tokenURI",
        "stateMutability": "view",
        "inputs": [{"name": "tokenId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "string"}],
    },
]

MARKETPLACE_ABI: Final[list[dict[str, Any]]] = [
    _event(
        "ItemListed",
        [
            ("listingId", "uint256", True),
            ("nftContract", "address", True),
            ("tokenId", "uint256", True),
            ("seller", "address", False),
            ("price", "uint256", False),
        ],
    ),
    _event(
        "ItemSold",
        [
            ("listingId", "uint256", True),
            ("buyer", "address", True),
        ],
    ),
    _event(
        "ListingCancelled",
        [
            ("listingId", "uint256", True),
        ],
    ),
]


def event_signature(event_abi: dict[str, Any]) -> str:
    """Canonical signature, e.g. `Transfer(address,address,uint256)`."""
    types = ",".join(arg["type"] for arg in event_abi["inputs"])
    return f"{event_abi['name']}({types})"


def event_abis(abi: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [item for item in abi if item.get("type") == "event" and not item.get("anonymous")]
