"""Token metadata enrichment.

Best-effort lookup run once when an asset is first projected:
tokenURI(tokenId) -> resolve locator -> fetch document. Failures are
reported in the result so the asset can be created without metadata.
"""

import asyncio
from typing import Protocol

import structlog

from nftmirror.config.settings import get_settings
from nftmirror.core.exceptions import NftMirrorError
from nftmirror.data.models.metadata import EnrichmentResult, MetadataDocument
from nftmirror.services.metadata.client import MetadataClient, to_metadata_document
from nftmirror.services.metadata.resolver import resolve_locator

logger = structlog.get_logger(__name__)


class TokenURIReader(Protocol):
    """Anything that can read `tokenURI(tokenId)` from a registry contract."""

    async def token_uri(self, contract_address: str, token_id: int) -> str: ...


class MetadataEnricher:
    """Resolves token metadata within a fixed deadline.

    Attributes:
        reader: Source of token URIs (normally the chain client).
        client: HTTP client for gateway and plain HTTP documents.
        ipfs_gateway: Gateway used for ipfs:// URIs.
        arweave_gateway: Gateway used for ar:// URIs.
        timeout: Overall deadline for one enrichment, in seconds.
    """

    def __init__(
        self,
        reader: TokenURIReader,
        client: MetadataClient,
        ipfs_gateway: str,
        arweave_gateway: str,
        timeout: float = 5.0,
    ) -> None:
        self.reader = reader
        self.client = client
        self.ipfs_gateway = ipfs_gateway
        self.arweave_gateway = arweave_gateway
        self.timeout = timeout

    async def enrich(self, contract_address: str, token_id: int) -> EnrichmentResult:
        """Look up the metadata of one token.

        The URI is kept in the result even when the document fetch fails.

        Args:
            contract_address: Registry contract address.
            token_id: Token id.

        Returns:
            EnrichmentResult; `error` is set when the lookup failed.
        """
        uri: str | None = None
        try:
            async with asyncio.timeout(self.timeout):
                uri = await self.reader.token_uri(contract_address, token_id)
                metadata = await self._load(uri)
        except TimeoutError:
            error = f"metadata lookup exceeded {self.timeout}s"
        except NftMirrorError as e:
            error = str(e)
        else:
            logger.debug("metadata_resolved", contract=contract_address, token_id=str(token_id))
            return EnrichmentResult(metadata_uri=uri, metadata=metadata)

        logger.warning(
            "metadata_lookup_failed",
            contract=contract_address,
            token_id=str(token_id),
            uri=uri,
            error=error,
        )
        return EnrichmentResult(metadata_uri=uri, error=error)

    async def _load(self, uri: str) -> MetadataDocument:
        locator = resolve_locator(uri, self.ipfs_gateway, self.arweave_gateway)
        if locator.inline is not None:
            return to_metadata_document(locator.inline, uri[:64])
        assert locator.url is not None
        return await self.client.fetch(locator.url)

    async def close(self) -> None:
        await self.client.close()


# Singleton instance
_enricher: MetadataEnricher | None = None


def get_metadata_enricher(reader: TokenURIReader) -> MetadataEnricher:
    """Get or create the metadata enricher singleton.

    Args:
        reader: Token URI source used on first creation.
    """
    global _enricher

    if _enricher is None:
        settings = get_settings()
        _enricher = MetadataEnricher(
            reader=reader,
            client=MetadataClient(
                timeout=settings.metadata_timeout_seconds,
                circuit_breaker_threshold=settings.circuit_breaker_threshold,
                circuit_breaker_cooldown=settings.circuit_breaker_cooldown,
            ),
            ipfs_gateway=settings.ipfs_gateway,
            arweave_gateway=settings.arweave_gateway,
            timeout=settings.metadata_timeout_seconds,
        )

    return _enricher


async def reset_metadata_enricher() -> None:
    """Close and drop the enricher singleton."""
    global _enricher
    if _enricher:
        await _enricher.close()
    _enricher = None
