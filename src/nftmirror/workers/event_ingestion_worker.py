"""Event ingestion background worker.

Polls the chain for registry and marketplace logs and feeds them to the
projector:

    sync cursor -> eth_getLogs(cursor+1 .. head-confirmations, batched)
    -> LogDecoder -> ChainStateProjector.process_batch
    -> advance cursor

The cursor never moves past the earliest event that failed with a
retryable error, so that event (and everything after it) is fetched and
applied again on the next poll. Handlers are idempotent, so re-applying
the events that did succeed is a no-op.

The worker:
- Starts with the FastAPI app when ingestion is enabled
- Skips the poll interval while it is catching up on a backlog
- Stops immediately if the projection store is unreachable
- Stops after 5 consecutive poll errors (RPC outages), with backoff between

Example:
    worker = EventIngestionWorker(store, projector, chain, decoder)
    task = asyncio.create_task(worker.run())
    ...
    await worker.stop()
    task.cancel()
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from nftmirror.core.exceptions import DatabaseConnectionError
from nftmirror.data.protocols import ProjectionStore
from nftmirror.services.chain.client import ChainClient
from nftmirror.services.chain.decoder import LogDecoder
from nftmirror.services.projector.projector import ChainStateProjector, ProcessingStatus

log = structlog.get_logger(__name__)

CURSOR_NAME = "event_ingestion"
MAX_CONSECUTIVE_ERRORS = 5
MAX_BACKOFF_SECONDS = 300


class EventIngestionWorker:
    """Background worker that keeps the projections in sync with the chain.

    Attributes:
        running: Worker running state.
        poll_interval: Seconds between polls once caught up.
        confirmations: Blocks behind head considered final.
        batch_size: Blocks per eth_getLogs call.
    """

    def __init__(
        self,
        store: ProjectionStore,
        projector: ChainStateProjector,
        chain: ChainClient,
        decoder: LogDecoder,
        start_block: int = 0,
        confirmations: int = 2,
        batch_size: int = 2000,
        poll_interval: float = 5.0,
        cursor_name: str = CURSOR_NAME,
    ) -> None:
        """Initialize worker.

        Args:
            store: Projection store (also holds the sync cursor).
            projector: Projector applying decoded events.
            chain: JSON-RPC client.
            decoder: Decoder for the tracked contracts.
            start_block: First block ingested when no cursor exists.
            confirmations: Blocks behind head to stay.
            batch_size: Blocks per eth_getLogs call.
            poll_interval: Seconds between polls once caught up.
            cursor_name: Name of the sync cursor row.
        """
        self.store = store
        self.projector = projector
        self.chain = chain
        self.decoder = decoder
        self.start_block = start_block
        self.confirmations = confirmations
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.cursor_name = cursor_name
        self.running = False

        self._last_run: datetime | None = None
        self._last_block: int | None = None
        self._counts: dict[str, int] = {status.value: 0 for status in ProcessingStatus}
        self._current_state: str = "idle"  # idle | processing | stopped | error

        log.info(
            "event_ingestion_worker_initialized",
            start_block=start_block,
            confirmations=confirmations,
            batch_size=batch_size,
        )

    def get_status(self) -> dict[str, Any]:
        """Get worker status for monitoring.

        Returns:
            Status dict with running flag, last run time, last synced block,
            event counts by outcome, and current state.
        """
        return {
            "running": self.running,
            "last_run": self._last_run,
            "last_block": self._last_block,
            "events": dict(self._counts),
            "current_state": self._current_state,
        }

    async def run(self) -> None:
        """Main loop; runs until stopped.

        Start as a background task: `asyncio.create_task(worker.run())`.
        """
        log.info("event_ingestion_worker_starting")
        self.running = True
        consecutive_errors = 0

        while self.running:
            try:
                self._current_state = "processing"
                backlog = await self.poll_once()
                self._last_run = datetime.now(UTC)
                self._current_state = "idle"
                consecutive_errors = 0

                if not backlog:
                    await asyncio.sleep(self.poll_interval)

            except DatabaseConnectionError as e:
                log.critical("event_ingestion_store_unavailable", error=str(e))
                self.running = False
                self._current_state = "error"
                break

            except Exception as e:
                consecutive_errors += 1
                self._current_state = "error"
                log.error(
                    "event_ingestion_poll_error",
                    error=str(e),
                    consecutive_errors=consecutive_errors,
                )

                if consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                    log.critical(
                        "event_ingestion_stopping_max_errors",
                        consecutive_errors=consecutive_errors,
                    )
                    self.running = False
                    self._current_state = "stopped"
                    break

                backoff = min(2**consecutive_errors, MAX_BACKOFF_SECONDS)
                log.warning("event_ingestion_error_backoff", backoff_seconds=backoff)
                await asyncio.sleep(backoff)

        log.info("event_ingestion_worker_stopped")

    async def poll_once(self) -> bool:
        """Ingest the next block range.

        Returns:
            True if confirmed blocks remain beyond the processed range.

        Raises:
            DatabaseConnectionError: If the store is unreachable.
        """
        head = await self.chain.get_block_number()
        safe_head = head - self.confirmations
        cursor = await self.store.get_cursor(self.cursor_name)
        from_block = self.start_block if cursor is None else cursor + 1

        if from_block > safe_head:
            log.debug("event_ingestion_caught_up", cursor=cursor, safe_head=safe_head)
            return False

        to_block = min(from_block + self.batch_size - 1, safe_head)
        logs = await self.chain.get_logs(self.decoder.addresses, from_block, to_block)

        timestamps = {}
        for block_number in sorted({int(entry["blockNumber"]) for entry in logs}):
            timestamps[block_number] = await self.chain.get_block_timestamp(block_number)

        records = self.decoder.decode_many(logs, timestamps)
        results = await self.projector.process_batch(records)

        for result in results:
            self._counts[result.status.value] += 1

        failed_blocks = [r.block_number for r in results if r.should_redeliver]
        synced_to = min(failed_blocks) - 1 if failed_blocks else to_block

        if synced_to >= from_block:
            await self.store.save_cursor(self.cursor_name, synced_to)
            self._last_block = synced_to

        log.info(
            "event_ingestion_batch_done",
            from_block=from_block,
            to_block=to_block,
            logs=len(logs),
            events=len(records),
            failed=len(failed_blocks),
            synced_to=max(synced_to, from_block - 1),
        )

        if failed_blocks:
            return False
        return to_block < safe_head

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        log.info("event_ingestion_worker_stopping")
        self.running = False
        self._current_state = "stopped"
