"""Token metadata enrichment."""

from nftmirror.services.metadata.client import MetadataClient
from nftmirror.services.metadata.enricher import (
    MetadataEnricher,
    get_metadata_enricher,
    reset_metadata_enricher,
)
from nftmirror.services.metadata.resolver import ResolvedLocator, resolve_locator

__all__ = [
    "MetadataClient",
    "MetadataEnricher",
    "ResolvedLocator",
    "get_metadata_enricher",
    "reset_metadata_enricher",
    "resolve_locator",
]
