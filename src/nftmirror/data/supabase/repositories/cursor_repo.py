"""Ingestion cursor repository.

Table schema expected (see migrations/003_sync_cursors_table.sql):
    sync_cursors (
        name TEXT PRIMARY KEY,
        block_number BIGINT NOT NULL,
        updated_at TIMESTAMPTZ DEFAULT NOW()
    )
"""

from datetime import UTC, datetime

import structlog

from nftmirror.data.supabase.client import SupabaseClient

log = structlog.get_logger(__name__)


class CursorRepository:
    """Stores the last fully ingested block per ingestion stream."""

    TABLE_NAME = "sync_cursors"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get(self, name: str) -> int | None:
        """Get the cursor for a stream, None if it never ran."""
        result = await self._client.execute(
            self._client.table(self.TABLE_NAME)
            .select("block_number")
            .eq("name", name)
            .limit(1)
        )
        if not result.data:
            return None
        return int(result.data[0]["block_number"])

    async def set(self, name: str, block_number: int) -> None:
        """Move the cursor for a stream."""
        await self._client.execute(
            self._client.table(self.TABLE_NAME).upsert(
                {
                    "name": name,
                    "block_number": block_number,
                    "updated_at": datetime.now(UTC).isoformat(),
                },
                on_conflict="name",
            )
        )
        log.debug("cursor_saved", name=name, block_number=block_number)
