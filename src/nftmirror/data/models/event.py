"""Event record models.

An `EventRecord` is the decoded form of one on-chain log: the event name,
its positional arguments in ABI order, and the block coordinates used to
order it. Handlers never consume raw records; they parse them into the
typed payloads below, which validate arity and argument types up front so
that a malformed record is rejected before any entity is read or written.
"""

import re
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field

from nftmirror.constants.chain import (
    ITEM_LISTED_EVENT,
    ITEM_SOLD_EVENT,
    LISTING_CANCELLED_EVENT,
    TRANSFER_EVENT,
    ZERO_ADDRESS,
)
from nftmirror.core.exceptions import MalformedEventError

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_UINT_RE = re.compile(r"^(0[xX][0-9a-fA-F]{1,64}|[0-9]{1,78})\Z")

BlockOrder = tuple[int, int]


class EventRecord(BaseModel):
    """Decoded on-chain log.

    Attributes:
        event_name: Solidity event name (Transfer, ItemListed, ...).
        args: Positional arguments in ABI declaration order.
        contract_address: Address of the emitting contract.
        block_number: Block that included the log.
        log_index: Position of the log within the block.
        transaction_hash: Hash of the emitting transaction, if known.
        block_timestamp: Timestamp of the block, if known.
    """

    model_config = ConfigDict(frozen=True)

    event_name: str
    args: list[Any] = Field(default_factory=list)
    contract_address: str
    block_number: int = Field(ge=0)
    log_index: int = Field(default=0, ge=0)
    transaction_hash: str | None = None
    block_timestamp: datetime | None = None

    @property
    def order(self) -> BlockOrder:
        """Block order used for last-writer-wins decisions."""
        return (self.block_number, self.log_index)

    @property
    def key(self) -> str:
        """Short identifier for logging."""
        prefix = self.transaction_hash or f"block-{self.block_number}"
        return f"{prefix}:{self.log_index}"


def parse_address(event_name: str, field: str, value: Any) -> str:
    """Validate an address argument and normalise it to lowercase."""
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise MalformedEventError(event_name, f"{field} is not an address: {value!r}")
    return value.lower()


def parse_uint(event_name: str, field: str, value: Any) -> int:
    """Validate an unsigned integer argument without losing precision.

    Accepts Python ints and plain decimal or 0x-prefixed hex strings;
    underscores, signs and surrounding whitespace are rejected. Floats and
    booleans are rejected since they cannot carry uint256 values.
    """
    if isinstance(value, bool) or value is None:
        raise MalformedEventError(event_name, f"{field} is not an integer: {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and _UINT_RE.match(value):
        parsed = int(value, 16) if value[:2] in ("0x", "0X") else int(value)
    else:
        raise MalformedEventError(event_name, f"{field} is not an integer: {value!r}")
    if parsed < 0:
        raise MalformedEventError(event_name, f"{field} is negative: {parsed}")
    return parsed


def _expect(record: EventRecord, name: str, arity: int) -> None:
    if record.event_name != name:
        raise MalformedEventError(record.event_name, f"expected a {name} event")
    if len(record.args) != arity:
        raise MalformedEventError(
            name, f"expected {arity} arguments, got {len(record.args)}"
        )


class TransferEvent(BaseModel):
    """ERC-721 Transfer(from, to, tokenId)."""

    model_config = ConfigDict(frozen=True)

    from_address: str
    to_address: str
    token_id: int
    contract_address: str
    order: BlockOrder
    transaction_hash: str | None = None
    timestamp: datetime | None = None

    @property
    def is_mint(self) -> bool:
        """True when the token is transferred out of the zero address."""
        return self.from_address == ZERO_ADDRESS

    @classmethod
    def from_record(cls, record: EventRecord) -> Self:
        """Parse a Transfer record.

        Raises:
            MalformedEventError: If arguments are missing or mistyped.
        """
        _expect(record, TRANSFER_EVENT, 3)
        from_address, to_address, token_id = record.args
        return cls(
            from_address=parse_address(TRANSFER_EVENT, "from", from_address),
            to_address=parse_address(TRANSFER_EVENT, "to", to_address),
            token_id=parse_uint(TRANSFER_EVENT, "tokenId", token_id),
            contract_address=parse_address(
                TRANSFER_EVENT, "contract", record.contract_address
            ),
            order=record.order,
            transaction_hash=record.transaction_hash,
            timestamp=record.block_timestamp,
        )


class ItemListedEvent(BaseModel):
    """Marketplace ItemListed(listingId, nftContract, tokenId, seller, price)."""

    model_config = ConfigDict(frozen=True)

    listing_id: int
    nft_contract: str
    token_id: int
    seller: str
    price: int
    marketplace_address: str
    order: BlockOrder

    @classmethod
    def from_record(cls, record: EventRecord) -> Self:
        """Parse an ItemListed record.

        Raises:
            MalformedEventError: If arguments are missing or mistyped.
        """
        _expect(record, ITEM_LISTED_EVENT, 5)
        listing_id, nft_contract, token_id, seller, price = record.args
        return cls(
            listing_id=parse_uint(ITEM_LISTED_EVENT, "listingId", listing_id),
            nft_contract=parse_address(ITEM_LISTED_EVENT, "nftContract", nft_contract),
            token_id=parse_uint(ITEM_LISTED_EVENT, "tokenId", token_id),
            seller=parse_address(ITEM_LISTED_EVENT, "seller", seller),
            price=parse_uint(ITEM_LISTED_EVENT, "price", price),
            marketplace_address=parse_address(
                ITEM_LISTED_EVENT, "contract", record.contract_address
            ),
            order=record.order,
        )


class ItemSoldEvent(BaseModel):
    """Marketplace ItemSold(listingId, buyer)."""

    model_config = ConfigDict(frozen=True)

    listing_id: int
    buyer: str
    marketplace_address: str
    order: BlockOrder

    @classmethod
    def from_record(cls, record: EventRecord) -> Self:
        """Parse an ItemSold record.

        Raises:
            MalformedEventError: If arguments are missing or mistyped.
        """
        _expect(record, ITEM_SOLD_EVENT, 2)
        listing_id, buyer = record.args
        return cls(
            listing_id=parse_uint(ITEM_SOLD_EVENT, "listingId", listing_id),
            buyer=parse_address(ITEM_SOLD_EVENT, "buyer", buyer),
            marketplace_address=parse_address(
                ITEM_SOLD_EVENT, "contract", record.contract_address
            ),
            order=record.order,
        )


class ListingCancelledEvent(BaseModel):
    """Marketplace ListingCancelled(listingId)."""

    model_config = ConfigDict(frozen=True)

    listing_id: int
    marketplace_address: str
    order: BlockOrder

    @classmethod
    def from_record(cls, record: EventRecord) -> Self:
        """Parse a ListingCancelled record.

        Raises:
            MalformedEventError: If arguments are missing or mistyped.
        """
        _expect(record, LISTING_CANCELLED_EVENT, 1)
        (listing_id,) = record.args
        return cls(
            listing_id=parse_uint(LISTING_CANCELLED_EVENT, "listingId", listing_id),
            marketplace_address=parse_address(
                LISTING_CANCELLED_EVENT, "contract", record.contract_address
            ),
            order=record.order,
        )
