"""Unit tests for event record parsing."""

from datetime import UTC, datetime

import pydantic
import pytest

from nftmirror.constants.chain import ZERO_ADDRESS
from nftmirror.core.exceptions import MalformedEventError, ValidationError
from nftmirror.data.models.event import (
    EventRecord,
    ItemListedEvent,
    ItemSoldEvent,
    ListingCancelledEvent,
    TransferEvent,
    parse_uint,
)
from tests.factories import (
    MARKETPLACE,
    NFT_CONTRACT,
    EventRecordFactory,
    generate_address,
    item_listed,
    item_sold,
    listing_cancelled,
    transfer,
)


class TestEventRecord:
    """Tests for EventRecord ordering helpers."""

    def test_order_is_block_then_log_index(self):
        record = EventRecordFactory(block_number=12, log_index=3)

        assert record.order == (12, 3)

    def test_key_uses_transaction_hash(self):
        record = EventRecordFactory(transaction_hash="0xabc", log_index=2)

        assert record.key == "0xabc:2"

    def test_key_without_transaction_hash(self):
        record = EventRecordFactory(transaction_hash=None, block_number=9, log_index=1)

        assert record.key == "block-9:1"

    def test_negative_block_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            EventRecord(event_name="Transfer", contract_address=NFT_CONTRACT, block_number=-1)


class TestTransferEvent:
    """Tests for Transfer parsing."""

    def test_parses_and_lowercases(self):
        to = "0x" + "AB" * 20
        stamp = datetime(2024, 1, 2, tzinfo=UTC)
        record = transfer(to=to, token_id=7, block=5, log_index=2, block_timestamp=stamp)

        event = TransferEvent.from_record(record)

        assert event.to_address == to.lower()
        assert event.from_address == ZERO_ADDRESS
        assert event.is_mint is True
        assert event.token_id == 7
        assert event.contract_address == NFT_CONTRACT
        assert event.order == (5, 2)
        assert event.timestamp == stamp

    def test_uint256_token_id_is_lossless(self):
        big = 2**256 - 1
        event = TransferEvent.from_record(transfer(to=generate_address(), token_id=big, block=1))

        assert event.token_id == big

    def test_string_token_ids(self):
        decimal = TransferEvent.from_record(transfer(to=generate_address(), token_id="42", block=1))
        hexadecimal = TransferEvent.from_record(transfer(to=generate_address(), token_id="0x2a", block=1))

        assert decimal.token_id == hexadecimal.token_id == 42

    def test_wrong_arity_is_malformed(self):
        record = EventRecordFactory(event_name="Transfer", args=[ZERO_ADDRESS, generate_address()])

        with pytest.raises(MalformedEventError, match="expected 3 arguments"):
            TransferEvent.from_record(record)

    def test_bad_address_is_malformed(self):
        record = transfer(to="not-an-address", token_id=1, block=1)

        with pytest.raises(MalformedEventError, match="to is not an address"):
            TransferEvent.from_record(record)

    def test_wrong_event_name_is_malformed(self):
        record = item_sold(1, generate_address(), block=1)

        with pytest.raises(MalformedEventError):
            TransferEvent.from_record(record)

    def test_malformed_event_is_validation_error(self):
        assert issubclass(MalformedEventError, ValidationError)


class TestMarketplaceEvents:
    """Tests for ItemListed / ItemSold / ListingCancelled parsing."""

    def test_item_listed(self):
        seller = generate_address()
        event = ItemListedEvent.from_record(item_listed(3, 7, seller, 10**18, block=8))

        assert event.listing_id == 3
        assert event.nft_contract == NFT_CONTRACT
        assert event.token_id == 7
        assert event.seller == seller
        assert event.price == 10**18
        assert event.marketplace_address == MARKETPLACE

    def test_item_listed_missing_price(self):
        record = EventRecordFactory(
            event_name="ItemListed",
            args=[3, NFT_CONTRACT, 7, generate_address()],
            contract_address=MARKETPLACE,
        )

        with pytest.raises(MalformedEventError, match="expected 5 arguments"):
            ItemListedEvent.from_record(record)

    def test_item_sold(self):
        buyer = generate_address()
        event = ItemSoldEvent.from_record(item_sold(3, buyer, block=9))

        assert (event.listing_id, event.buyer) == (3, buyer)

    def test_listing_cancelled(self):
        event = ListingCancelledEvent.from_record(listing_cancelled(3, block=9, log_index=4))

        assert event.listing_id == 3
        assert event.order == (9, 4)


class TestParseUint:
    """Tests for unsigned integer validation."""

    @pytest.mark.parametrize(
        "value", [True, None, 1.5, -1, "abc", "-5", [1], "1_000", " 12", "12\n", "+3", "0x", "", "9" * 79]
    )
    def test_rejects_invalid(self, value):
        with pytest.raises(MalformedEventError):
            parse_uint("Transfer", "tokenId", value)

    def test_accepts_zero(self):
        assert parse_uint("Transfer", "tokenId", 0) == 0

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("42", 42), ("0x2a", 42), ("0X2A", 42), (str(2**256 - 1), 2**256 - 1)],
    )
    def test_accepts_decimal_and_hex_strings(self, value, expected):
        assert parse_uint("Transfer", "tokenId", value) == expected
