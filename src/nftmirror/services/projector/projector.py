"""Chain-state projector.

Applies decoded registry and marketplace events to the asset and listing
projections. Each handler runs its read-compute-write cycles under
`run_optimistic`, so concurrent handlers touching the same entity
serialise through version conflicts instead of locks.

Flow per event:
    EventRecord -> typed event (MalformedEventError if invalid)
    -> handler -> transition(s) -> conditional write(s)
    -> EventProcessingResult
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog
from tenacity.wait import wait_base

from nftmirror.constants.chain import (
    ITEM_LISTED_EVENT,
    ITEM_SOLD_EVENT,
    LISTING_CANCELLED_EVENT,
    TRANSFER_EVENT,
)
from nftmirror.constants.projection import DEFAULT_CONCURRENCY, DEFAULT_MAX_ATTEMPTS
from nftmirror.core.exceptions import (
    DatabaseConnectionError,
    ExhaustedRetriesError,
    MalformedEventError,
)
from nftmirror.core.projection import transitions
from nftmirror.core.projection.transitions import AssetEffect, ListingTransition
from nftmirror.data.models.asset import AssetKey
from nftmirror.data.models.event import (
    EventRecord,
    ItemListedEvent,
    ItemSoldEvent,
    ListingCancelledEvent,
    TransferEvent,
)
from nftmirror.data.models.listing import ListingKey, ListingStatus
from nftmirror.data.models.metadata import EnrichmentResult
from nftmirror.data.protocols import ProjectionStore
from nftmirror.services.metadata.enricher import MetadataEnricher
from nftmirror.services.projector.retry import run_optimistic

logger = structlog.get_logger(__name__)


class ProcessingStatus(str, Enum):
    """Outcome of processing one event."""

    APPLIED = "applied"  # at least one entity changed
    UNCHANGED = "unchanged"  # redelivery or superseded event
    SKIPPED = "skipped"  # event type not projected
    REJECTED = "rejected"  # malformed, never retried
    FAILED = "failed"  # retryable, redeliver later


@dataclass
class EventProcessingResult:
    """Per-event processing report."""

    event_key: str
    event_name: str
    block_number: int
    status: ProcessingStatus
    error: str | None = None

    @property
    def should_redeliver(self) -> bool:
        return self.status == ProcessingStatus.FAILED


class ChainStateProjector:
    """Applies on-chain events to the asset and listing projections.

    Attributes:
        store: Projection store all reads and conditional writes go through.
        enricher: Metadata enricher used when an asset is first created.
        max_attempts: Read-compute-write attempts before giving up.
        concurrency: Events applied concurrently by `process_batch`.

    Example:
        projector = ChainStateProjector(store, enricher)
        results = await projector.process_batch(records)
        retry_later = [r for r in results if r.should_redeliver]
    """

    def __init__(
        self,
        store: ProjectionStore,
        enricher: MetadataEnricher | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        concurrency: int = DEFAULT_CONCURRENCY,
        retry_wait: wait_base | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize projector.

        Args:
            store: Projection store.
            enricher: Metadata enricher (None disables enrichment).
            max_attempts: Attempts per read-compute-write cycle.
            concurrency: Maximum events in flight in `process_batch`.
            retry_wait: Tenacity wait strategy between conflicting attempts.
            clock: Source of "now" for events without a block timestamp.
        """
        self.store = store
        self.enricher = enricher
        self.max_attempts = max_attempts
        self.concurrency = concurrency
        self._retry_wait = retry_wait
        self._clock = clock or (lambda: datetime.now(UTC))
        self._handlers: dict[str, Callable[[EventRecord], Awaitable[ProcessingStatus]]] = {
            TRANSFER_EVENT: self._on_transfer,
            ITEM_LISTED_EVENT: self._on_item_listed,
            ITEM_SOLD_EVENT: self._on_item_sold,
            LISTING_CANCELLED_EVENT: self._on_listing_cancelled,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def apply(self, record: EventRecord) -> ProcessingStatus:
        """Apply one event, propagating any error.

        Raises:
            MalformedEventError: If the record cannot be parsed.
            ExhaustedRetriesError: If conflicts outlived the retry bound.
            DatabaseConnectionError: If the store is unreachable.
        """
        handler = self._handlers.get(record.event_name)
        if handler is None:
            logger.debug("event_not_projected", event_name=record.event_name, key=record.key)
            return ProcessingStatus.SKIPPED
        return await handler(record)

    async def process(self, record: EventRecord) -> EventProcessingResult:
        """Apply one event and report the outcome instead of raising.

        Only `DatabaseConnectionError` propagates: losing the store must
        halt ingestion rather than mark every following event failed.
        """
        error: str | None = None

        # Every line logged while handling the event carries its name and key
        with structlog.contextvars.bound_contextvars(event_name=record.event_name, key=record.key):
            try:
                status = await self.apply(record)
            except DatabaseConnectionError:
                logger.critical("projection_store_unavailable")
                raise
            except MalformedEventError as e:
                logger.warning("event_rejected", error=str(e))
                status, error = ProcessingStatus.REJECTED, str(e)
            except ExhaustedRetriesError as e:
                logger.error("event_processing_exhausted", error=str(e))
                status, error = ProcessingStatus.FAILED, str(e)
            except Exception as e:
                logger.exception("event_processing_failed", error=str(e))
                status, error = ProcessingStatus.FAILED, str(e)

        return EventProcessingResult(
            event_key=record.key,
            event_name=record.event_name,
            block_number=record.block_number,
            status=status,
            error=error,
        )

    async def process_batch(self, records: Iterable[EventRecord]) -> list[EventProcessingResult]:
        """Apply events concurrently, isolating per-event failures.

        Results are returned in input order.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(record: EventRecord) -> EventProcessingResult:
            async with semaphore:
                return await self.process(record)

        results = await asyncio.gather(*(bounded(record) for record in records))
        return list(results)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _on_transfer(self, record: EventRecord) -> ProcessingStatus:
        return await self.handle_transfer(TransferEvent.from_record(record))

    async def _on_item_listed(self, record: EventRecord) -> ProcessingStatus:
        return await self.handle_item_listed(ItemListedEvent.from_record(record))

    async def _on_item_sold(self, record: EventRecord) -> ProcessingStatus:
        return await self.handle_item_sold(ItemSoldEvent.from_record(record))

    async def _on_listing_cancelled(self, record: EventRecord) -> ProcessingStatus:
        return await self.handle_listing_cancelled(ListingCancelledEvent.from_record(record))

    # ------------------------------------------------------------------
    # Transfer
    # ------------------------------------------------------------------

    async def handle_transfer(self, event: TransferEvent) -> ProcessingStatus:
        """Create or update the asset for a Transfer.

        Metadata is fetched at most once per call, and only if the asset
        does not exist yet; a conflict retry reuses the first result.
        """
        key = AssetKey(event.contract_address, event.token_id)
        log = logger.bind(asset=str(key), block=event.order[0])
        enrichment: list[EnrichmentResult | None] = []

        async def cycle() -> ProcessingStatus:
            current = await self.store.find_asset(key)

            if current is None:
                if not enrichment:
                    enrichment.append(await self._enrich(key))
                asset = transitions.new_asset_from_transfer(event, self._clock(), enrichment[0])
                await self.store.save_asset(asset, None)
                log.info(
                    "asset_created",
                    owner=asset.owner,
                    mint=event.is_mint,
                    has_metadata=asset.metadata is not None,
                )
                return ProcessingStatus.APPLIED

            updated = transitions.apply_transfer(current.entity, event, self._clock())
            if updated is None:
                log.debug("transfer_already_applied")
                return ProcessingStatus.UNCHANGED

            await self.store.save_asset(updated, current.version)
            if updated.owner != current.entity.owner:
                log.info("asset_owner_updated", owner=updated.owner)
            else:
                log.info(
                    "transfer_stale_ignored",
                    last_applied=current.entity.last_transfer_order,
                    event_order=event.order,
                )
            return ProcessingStatus.APPLIED

        return await run_optimistic(
            cycle,
            operation=f"transfer {key}",
            max_attempts=self.max_attempts,
            wait=self._retry_wait,
        )

    async def _enrich(self, key: AssetKey) -> EnrichmentResult | None:
        if self.enricher is None:
            return None
        try:
            result = await self.enricher.enrich(key.contract_address, key.token_id)
        except Exception as e:
            logger.warning("metadata_enrichment_failed", asset=str(key), error=str(e))
            return None
        if not result.succeeded:
            logger.warning(
                "metadata_enrichment_failed",
                asset=str(key),
                uri=result.metadata_uri,
                error=result.error,
            )
        return result

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    async def handle_item_listed(self, event: ItemListedEvent) -> ProcessingStatus:
        """Create the listing and point its asset at it."""
        key = ListingKey(event.marketplace_address, event.listing_id)

        transition = await self._transition_listing(
            key, lambda current: transitions.on_item_listed(current, event)
        )
        if transition.changed:
            logger.info(
                "listing_created" if transition.listing.status is ListingStatus.ACTIVE
                else "listing_details_backfilled",
                listing=str(key),
                asset=str(transition.listing.asset_key),
                price=str(event.price),
            )

        asset_changed = False
        if transition.asset_effect is AssetEffect.ATTACH:
            asset_changed = await self._attach_listing(key, AssetKey(event.nft_contract, event.token_id))

        return self._status(transition.changed or asset_changed)

    async def handle_item_sold(self, event: ItemSoldEvent) -> ProcessingStatus:
        """Mark the listing sold and clear its asset's listing reference."""
        key = ListingKey(event.marketplace_address, event.listing_id)
        return await self._close_listing(key, ListingStatus.SOLD, event.order[0], event.buyer)

    async def handle_listing_cancelled(self, event: ListingCancelledEvent) -> ProcessingStatus:
        """Mark the listing cancelled and clear its asset's listing reference."""
        key = ListingKey(event.marketplace_address, event.listing_id)
        return await self._close_listing(key, ListingStatus.CANCELLED, event.order[0])

    async def _close_listing(
        self,
        key: ListingKey,
        status: ListingStatus,
        block_number: int,
        buyer: str | None = None,
    ) -> ProcessingStatus:
        transition = await self._transition_listing(
            key,
            lambda current: transitions.on_listing_closed(
                current, key, status, block_number, buyer
            ),
        )

        if transition.changed:
            if transition.listing.has_details:
                logger.info("listing_closed", listing=str(key), status=status.value)
            else:
                logger.warning("listing_closed_before_listed", listing=str(key), status=status.value)
        else:
            logger.debug(
                "listing_already_terminal",
                listing=str(key),
                status=transition.listing.status.value,
                event_status=status.value,
            )

        asset_changed = False
        asset_key = transition.listing.asset_key
        if transition.asset_effect is AssetEffect.DETACH and asset_key is not None:
            # A fresh close always rewrites the asset so that a concurrent
            # attach that saw the listing as active fails its version check.
            asset_changed = await self._detach_listing(
                asset_key, key, fence=transition.changed
            )

        return self._status(transition.changed or asset_changed)

    async def _transition_listing(
        self,
        key: ListingKey,
        compute: Callable[[Any], ListingTransition],
    ) -> ListingTransition:
        async def cycle() -> ListingTransition:
            current = await self.store.find_listing(key)
            transition = compute(current.entity if current else None)
            if transition.changed:
                await self.store.save_listing(
                    transition.listing, current.version if current else None
                )
            return transition

        return await run_optimistic(
            cycle,
            operation=f"listing {key}",
            max_attempts=self.max_attempts,
            wait=self._retry_wait,
        )

    async def _attach_listing(self, listing_key: ListingKey, asset_key: AssetKey) -> bool:
        async def cycle() -> bool:
            current = await self.store.find_asset(asset_key)
            if current is None:
                logger.info("listing_asset_not_projected", listing=str(listing_key), asset=str(asset_key))
                return False

            # Listings are read after the asset: if one closes in between, the
            # close handler's asset write bumps the version read above.
            reference = transitions.listing_reference(current.entity)
            referenced = None
            if reference is not None and reference != listing_key:
                referenced = await self.store.find_listing(reference)
            listing = await self.store.find_listing(listing_key)
            if listing is None:
                return False

            updated = transitions.attach_listing(
                current.entity, listing.entity, referenced.entity if referenced else None
            )
            if updated is None:
                if referenced is not None:
                    logger.debug(
                        "listing_not_attached",
                        asset=str(asset_key),
                        listing=str(listing_key),
                        current=str(reference),
                    )
                return False

            await self.store.save_asset(updated, current.version)
            logger.info("asset_listing_attached", asset=str(asset_key), listing=str(listing_key))
            return True

        return await run_optimistic(
            cycle,
            operation=f"attach {listing_key} to {asset_key}",
            max_attempts=self.max_attempts,
            wait=self._retry_wait,
        )

    async def _detach_listing(self, asset_key: AssetKey, listing_key: ListingKey, fence: bool) -> bool:
        async def cycle() -> bool:
            current = await self.store.find_asset(asset_key)
            if current is None:
                return False

            updated = transitions.detach_listing(current.entity, listing_key)
            if updated is None and not fence:
                return False

            await self.store.save_asset(updated or current.entity, current.version)
            if updated is not None:
                logger.info("asset_listing_cleared", asset=str(asset_key), listing=str(listing_key))
            return updated is not None

        return await run_optimistic(
            cycle,
            operation=f"detach {listing_key} from {asset_key}",
            max_attempts=self.max_attempts,
            wait=self._retry_wait,
        )

    @staticmethod
    def _status(changed: bool) -> ProcessingStatus:
        return ProcessingStatus.APPLIED if changed else ProcessingStatus.UNCHANGED
