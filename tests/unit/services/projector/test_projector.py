"""Unit tests for ChainStateProjector handlers.

Tests cover:
- The four reference scenarios (list before mint, list after mint, sale, redelivery)
- Idempotence under redelivery
- Out-of-order transfers
- Forward-only listing lifecycle
- Metadata enrichment isolation
- Per-event failure isolation (malformed, exhausted retries, store outage)
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from tenacity import wait_none

from nftmirror.core.exceptions import (
    DatabaseConnectionError,
    VersionConflictError,
)
from nftmirror.core.projection.consistency import find_consistency_violations
from nftmirror.data.memory.store import InMemoryProjectionStore
from nftmirror.data.models.asset import AssetKey
from nftmirror.data.models.listing import ListingKey, ListingStatus
from nftmirror.data.models.metadata import EnrichmentResult, MetadataDocument
from nftmirror.services.projector.projector import ChainStateProjector, ProcessingStatus
from tests.factories import (
    FIXED_NOW,
    MARKETPLACE,
    NFT_CONTRACT,
    EventRecordFactory,
    item_listed,
    item_sold,
    listing_cancelled,
    transfer,
)

TOKEN = AssetKey(NFT_CONTRACT, 7)
LISTING = ListingKey(MARKETPLACE, 1)


async def _snapshot(store):
    assets = await store.list_assets(limit=1000)
    listings = await store.list_listings(limit=1000)
    return assets, listings


async def _assert_consistent(store):
    assets, listings = await _snapshot(store)
    assert find_consistency_violations(assets, listings) == []


class TestScenarios:
    """Reference scenarios for the listing/asset interplay."""

    @pytest.mark.asyncio
    async def test_listing_before_asset_exists(self, projector, store, alice):
        status = await projector.apply(item_listed(1, 7, alice, 1000, block=1))

        assert status is ProcessingStatus.APPLIED
        listing = await store.find_listing(LISTING)
        assert listing is not None
        assert listing.entity.status is ListingStatus.ACTIVE
        assert await store.find_asset(TOKEN) is None

    @pytest.mark.asyncio
    async def test_listing_after_mint_references_asset(self, projector, store, alice):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))

        asset = (await store.find_asset(TOKEN)).entity
        assert asset.owner == alice
        assert (asset.listing_id, asset.seller, asset.price) == (1, alice, 1000)
        assert (await store.find_listing(LISTING)).entity.status is ListingStatus.ACTIVE
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_sale_clears_reference_and_keeps_owner(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))

        status = await projector.apply(item_sold(1, bob, block=3))

        assert status is ProcessingStatus.APPLIED
        listing = (await store.find_listing(LISTING)).entity
        assert listing.status is ListingStatus.SOLD
        assert listing.buyer == bob
        asset = (await store.find_asset(TOKEN)).entity
        assert asset.owner == alice
        assert (asset.listing_id, asset.seller, asset.price) == (None, None, None)
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_item_listed_redelivery_is_noop(self, projector, store, alice):
        event = item_listed(1, 7, alice, 1000, block=1)
        await projector.apply(event)
        writes = store.write_count

        status = await projector.apply(event)

        assert status is ProcessingStatus.UNCHANGED
        assert store.write_count == writes
        assert len(await store.list_listings()) == 1


class TestTransfers:
    """Tests for the Transfer handler."""

    @pytest.mark.asyncio
    async def test_mint_creates_asset(self, projector, store, alice):
        await projector.apply(transfer(to=alice, token_id=7, block=1))

        asset = (await store.find_asset(TOKEN)).entity
        assert asset.creator == alice
        assert asset.minted_at == FIXED_NOW
        assert asset.metadata is None

    @pytest.mark.asyncio
    async def test_transfer_redelivery_is_noop(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        move = transfer(to=bob, token_id=7, block=2, from_address=alice)
        await projector.apply(move)
        writes = store.write_count

        assert await projector.apply(move) is ProcessingStatus.UNCHANGED
        assert store.write_count == writes
        assert (await store.find_asset(TOKEN)).entity.owner == bob

    @pytest.mark.asyncio
    async def test_out_of_order_transfers_converge(self, projector, store, alice, bob):
        carol = "0x" + "c" * 40
        events = [
            transfer(to=carol, token_id=7, block=3, from_address=bob),
            transfer(to=alice, token_id=7, block=1),
            transfer(to=bob, token_id=7, block=2, from_address=alice),
        ]

        for event in events:
            await projector.apply(event)

        asset = (await store.find_asset(TOKEN)).entity
        assert asset.owner == carol
        assert asset.creator == alice
        assert [h.block_number for h in asset.history] == [1, 2, 3]
        assert asset.last_transfer_order == (3, 0)

    @pytest.mark.asyncio
    async def test_enrichment_runs_once_on_creation(self, store, alice, bob):
        enricher = MagicMock()
        enricher.enrich = AsyncMock(
            return_value=EnrichmentResult(
                metadata_uri="ipfs://Qm7", metadata=MetadataDocument(name="Seven")
            )
        )
        projector = ChainStateProjector(store, enricher, retry_wait=wait_none())

        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(transfer(to=bob, token_id=7, block=2, from_address=alice))

        enricher.enrich.assert_awaited_once_with(NFT_CONTRACT, 7)
        asset = (await store.find_asset(TOKEN)).entity
        assert asset.metadata_uri == "ipfs://Qm7"
        assert asset.metadata.name == "Seven"

    @pytest.mark.asyncio
    async def test_enrichment_failure_does_not_block_creation(self, store, alice, mock_enricher):
        projector = ChainStateProjector(store, mock_enricher, retry_wait=wait_none())

        status = await projector.apply(transfer(to=alice, token_id=7, block=1))

        assert status is ProcessingStatus.APPLIED
        asset = (await store.find_asset(TOKEN)).entity
        assert asset.owner == alice
        assert asset.metadata_uri == "ipfs://missing"
        assert asset.metadata is None

    @pytest.mark.asyncio
    async def test_enricher_exception_does_not_block_creation(self, store, alice):
        enricher = MagicMock()
        enricher.enrich = AsyncMock(side_effect=RuntimeError("gateway exploded"))
        projector = ChainStateProjector(store, enricher, retry_wait=wait_none())

        status = await projector.apply(transfer(to=alice, token_id=7, block=1))

        assert status is ProcessingStatus.APPLIED
        assert (await store.find_asset(TOKEN)).entity.metadata_uri is None

    @pytest.mark.asyncio
    async def test_enrichment_is_reused_across_conflict_retries(self, alice):
        class FlakyStore(InMemoryProjectionStore):
            def __init__(self):
                super().__init__()
                self.conflicts_left = 1

            async def save_asset(self, asset, expected_version):
                if self.conflicts_left:
                    self.conflicts_left -= 1
                    raise VersionConflictError("asset", asset.key, expected_version)
                return await super().save_asset(asset, expected_version)

        store = FlakyStore()
        enricher = MagicMock()
        enricher.enrich = AsyncMock(return_value=EnrichmentResult(metadata_uri="ar://tx"))
        projector = ChainStateProjector(store, enricher, retry_wait=wait_none())

        await projector.apply(transfer(to=alice, token_id=7, block=1))

        enricher.enrich.assert_awaited_once()
        assert (await store.find_asset(TOKEN)).entity.metadata_uri == "ar://tx"


class TestListingLifecycle:
    """Tests for ItemListed / ItemSold / ListingCancelled handlers."""

    @pytest.mark.asyncio
    async def test_cancel_clears_reference(self, projector, store, alice):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))

        await projector.apply(listing_cancelled(1, block=3))

        assert (await store.find_listing(LISTING)).entity.status is ListingStatus.CANCELLED
        assert (await store.find_asset(TOKEN)).entity.listing_id is None

    @pytest.mark.asyncio
    async def test_terminal_listing_does_not_regress(self, projector, store, alice, bob):
        await projector.apply(item_listed(1, 7, alice, 1000, block=1))
        await projector.apply(item_sold(1, bob, block=2))

        status = await projector.apply(listing_cancelled(1, block=3))

        assert status is ProcessingStatus.UNCHANGED
        listing = (await store.find_listing(LISTING)).entity
        assert listing.status is ListingStatus.SOLD
        assert listing.buyer == bob

    @pytest.mark.asyncio
    async def test_sold_redelivery_is_noop(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))
        sold = item_sold(1, bob, block=3)
        await projector.apply(sold)
        writes = store.write_count

        assert await projector.apply(sold) is ProcessingStatus.UNCHANGED
        assert store.write_count == writes

    @pytest.mark.asyncio
    async def test_close_leaves_asset_relisted_under_other_id(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))
        await projector.apply(listing_cancelled(1, block=3))
        await projector.apply(item_listed(2, 7, alice, 2000, block=4))

        await projector.apply(item_sold(1, bob, block=5))

        asset = (await store.find_asset(TOKEN)).entity
        assert (asset.listing_id, asset.price) == (2, 2000)
        assert (await store.find_listing(LISTING)).entity.status is ListingStatus.CANCELLED
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_close_before_listed_keeps_terminal_status(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))

        await projector.apply(item_sold(1, bob, block=3))
        await projector.apply(item_listed(1, 7, alice, 1000, block=2))

        listing = (await store.find_listing(LISTING)).entity
        assert listing.status is ListingStatus.SOLD
        assert (listing.token_id, listing.price) == (7, 1000)
        assert (await store.find_asset(TOKEN)).entity.listing_id is None
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_listing_redelivery_attaches_late_asset(self, projector, store, alice):
        listed = item_listed(1, 7, alice, 1000, block=2)
        await projector.apply(listed)
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        assert (await store.find_asset(TOKEN)).entity.listing_id is None

        status = await projector.apply(listed)

        assert status is ProcessingStatus.APPLIED
        assert (await store.find_asset(TOKEN)).entity.listing_id == 1
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_listings_are_scoped_by_marketplace(self, projector, store, alice):
        other_marketplace = "0x" + "d" * 40

        await projector.apply(item_listed(1, 7, alice, 1000, block=1))
        await projector.apply(
            item_listed(1, 8, alice, 5, block=2, contract_address=other_marketplace)
        )

        assert len(await store.list_listings()) == 2
        assert (await store.find_listing(ListingKey(other_marketplace, 1))).entity.token_id == 8

    @pytest.mark.asyncio
    async def test_late_older_listing_keeps_newer_reference(self, projector, store, alice, bob):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(2, 7, bob, 2000, block=4))

        assert await projector.apply(item_listed(1, 7, alice, 1000, block=2)) is ProcessingStatus.APPLIED
        await projector.apply(item_sold(1, bob, block=3))

        asset = (await store.find_asset(TOKEN)).entity
        assert (asset.listing_id, asset.seller, asset.price) == (2, bob, 2000)
        assert (await store.find_listing(ListingKey(MARKETPLACE, 2))).entity.status is ListingStatus.ACTIVE
        await _assert_consistent(store)

    @pytest.mark.asyncio
    async def test_close_on_other_marketplace_keeps_reference(self, projector, store, alice, bob):
        other_marketplace = "0x" + "d" * 40
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        await projector.apply(item_listed(1, 7, alice, 500, block=2, contract_address=other_marketplace))
        await projector.apply(item_listed(1, 7, alice, 1000, block=3))

        await projector.apply(item_sold(1, bob, block=4, contract_address=other_marketplace))

        asset = (await store.find_asset(TOKEN)).entity
        assert (asset.listing_marketplace, asset.listing_id) == (MARKETPLACE, 1)
        await _assert_consistent(store)


class TestFailureIsolation:
    """Tests for per-event error reporting."""

    @pytest.mark.asyncio
    async def test_malformed_event_is_rejected_without_writes(self, projector, store):
        record = EventRecordFactory(event_name="Transfer", args=["0x" + "0" * 40])

        result = await projector.process(record)

        assert result.status is ProcessingStatus.REJECTED
        assert result.should_redeliver is False
        assert "expected 3 arguments" in result.error
        assert store.write_count == 0

    @pytest.mark.asyncio
    async def test_unknown_event_is_skipped(self, projector):
        record = EventRecordFactory(event_name="Approval", args=[])

        result = await projector.process(record)

        assert result.status is ProcessingStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_log_lines_carry_event_context(self, projector):
        capture = structlog.testing.LogCapture()
        structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])
        record = EventRecordFactory(event_name="Transfer", args=["0x" + "0" * 40])

        try:
            await projector.process(record)
        finally:
            structlog.reset_defaults()

        [entry] = [e for e in capture.entries if e["event"] == "event_rejected"]
        assert entry["event_name"] == "Transfer"
        assert entry["key"] == record.key
        assert structlog.contextvars.get_contextvars() == {}

    @pytest.mark.asyncio
    async def test_exhausted_retries_are_reported_for_redelivery(self, alice):
        store = MagicMock()
        store.find_asset = AsyncMock(return_value=None)
        store.save_asset = AsyncMock(side_effect=VersionConflictError("asset", TOKEN, None))
        projector = ChainStateProjector(store, max_attempts=3, retry_wait=wait_none())

        result = await projector.process(transfer(to=alice, token_id=7, block=1))

        assert result.status is ProcessingStatus.FAILED
        assert result.should_redeliver is True
        assert store.save_asset.await_count == 3

    @pytest.mark.asyncio
    async def test_unexpected_error_is_reported_as_failed(self, alice):
        store = MagicMock()
        store.find_listing = AsyncMock(side_effect=RuntimeError("boom"))
        projector = ChainStateProjector(store, retry_wait=wait_none())

        result = await projector.process(item_listed(1, 7, alice, 1, block=1))

        assert result.status is ProcessingStatus.FAILED
        assert result.error == "boom"

    @pytest.mark.asyncio
    async def test_store_outage_propagates(self, alice):
        store = MagicMock()
        store.find_asset = AsyncMock(side_effect=DatabaseConnectionError("Supabase: down"))
        projector = ChainStateProjector(store, retry_wait=wait_none())

        with pytest.raises(DatabaseConnectionError):
            await projector.process(transfer(to=alice, token_id=7, block=1))

    @pytest.mark.asyncio
    async def test_batch_isolates_failures(self, projector, store, alice):
        records = [
            transfer(to=alice, token_id=7, block=1),
            EventRecordFactory(event_name="ItemSold", args=[1], contract_address=MARKETPLACE),
            transfer(to=alice, token_id=8, block=2),
        ]

        results = await projector.process_batch(records)

        assert [r.status for r in results] == [
            ProcessingStatus.APPLIED,
            ProcessingStatus.REJECTED,
            ProcessingStatus.APPLIED,
        ]
        assert len(await store.list_assets()) == 2
