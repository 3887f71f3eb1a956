"""Shared pytest fixtures for NFT Mirror tests.

This module provides fixtures for:
- Environment defaults so Settings can load without a .env file
- In-memory projection store and a projector wired to it
- Mocked Supabase client and chain collaborators
- Test data factories

Usage:
    @pytest.mark.asyncio
    async def test_something(projector, store):
        await projector.apply(transfer(to=alice, token_id=7, block=1))
        assert await store.find_asset(AssetKey(NFT_CONTRACT, 7))
"""

import os
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from tenacity import wait_none

from nftmirror.config.settings import get_settings
from nftmirror.data.memory.store import InMemoryProjectionStore
from nftmirror.services.projector.projector import ChainStateProjector
from tests.factories import (
    FIXED_NOW,
    MARKETPLACE,
    NFT_CONTRACT,
    AssetFactory,
    ListingFactory,
    generate_address,
)

# =============================================================================
# Environment Configuration
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment() -> Generator[None, None, None]:
    """Set up test environment variables.

    Loads .env file first, then sets defaults for any missing variables.
    """
    from dotenv import load_dotenv

    original_env = os.environ.copy()

    load_dotenv()

    os.environ.setdefault("NFT_CONTRACT_ADDRESS", NFT_CONTRACT)
    os.environ.setdefault("MARKETPLACE_ADDRESS", MARKETPLACE)
    os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
    os.environ.setdefault("SUPABASE_KEY", "test-key")
    os.environ.setdefault("RPC_URL", "http://localhost:8545")
    get_settings.cache_clear()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    get_settings.cache_clear()


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def asset_factory() -> type[AssetFactory]:
    """Provide asset factory for creating test assets."""
    return AssetFactory


@pytest.fixture
def listing_factory() -> type[ListingFactory]:
    """Provide listing factory for creating test listings."""
    return ListingFactory


@pytest.fixture
def alice() -> str:
    return generate_address()


@pytest.fixture
def bob() -> str:
    return generate_address()


# =============================================================================
# Projection Fixtures
# =============================================================================


@pytest.fixture
def store() -> InMemoryProjectionStore:
    """Fresh in-memory projection store."""
    return InMemoryProjectionStore()


@pytest.fixture
def projector(store: InMemoryProjectionStore) -> ChainStateProjector:
    """Projector over the in-memory store, without enrichment or retry waits."""
    return ChainStateProjector(store, retry_wait=wait_none(), clock=lambda: FIXED_NOW)


# =============================================================================
# Mock External Services
# =============================================================================


@pytest.fixture
def mock_supabase_client() -> MagicMock:
    """Mock SupabaseClient for repository unit tests.

    `table()` returns a chainable query builder; set
    `mock_supabase_client.execute.return_value` per test.
    """
    mock = MagicMock()

    query = MagicMock()
    for method in ("select", "insert", "update", "upsert", "eq", "is_", "limit", "order"):
        getattr(query, method).return_value = query
    query.not_ = query

    mock.table = MagicMock(return_value=query)
    mock.query = query
    mock.execute = AsyncMock(return_value=MagicMock(data=[]))
    return mock


@pytest.fixture
def mock_enricher() -> MagicMock:
    """Mock metadata enricher that always fails softly."""
    from nftmirror.data.models.metadata import EnrichmentResult

    mock = MagicMock()
    mock.enrich = AsyncMock(
        return_value=EnrichmentResult(metadata_uri="ipfs://missing", error="not found")
    )
    return mock
