"""HTTP client for token metadata documents."""

import pydantic
import structlog

from nftmirror.core.exceptions import (
    CircuitBreakerOpenError,
    EnrichmentError,
    ExternalServiceError,
)
from nftmirror.data.models.metadata import MetadataDocument
from nftmirror.services.base import BaseAPIClient
from nftmirror.services.metadata.resolver import parse_document_bytes

log = structlog.get_logger(__name__)


class MetadataClient(BaseAPIClient):
    """Fetches metadata JSON from IPFS/Arweave gateways or plain HTTP.

    One attempt per call: the caller decides whether to try again later.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: int = 30,
    ) -> None:
        super().__init__(
            service="metadata",
            timeout=timeout,
            headers={"Accept": "application/json"},
            max_retries=1,
            circuit_breaker_threshold=circuit_breaker_threshold,
            circuit_breaker_cooldown=circuit_breaker_cooldown,
        )

    async def fetch(self, url: str) -> MetadataDocument:
        """Fetch and validate one metadata document.

        Args:
            url: Absolute HTTP(S) URL of the document.

        Returns:
            Parsed MetadataDocument.

        Raises:
            EnrichmentError: On HTTP failure, open circuit, or invalid document.
        """
        try:
            response = await self.get(url)
        except (ExternalServiceError, CircuitBreakerOpenError) as e:
            raise EnrichmentError(str(e), locator=url) from e

        document = parse_document_bytes(response.content, locator=url)
        return to_metadata_document(document, url)


def to_metadata_document(document: dict, locator: str) -> MetadataDocument:
    """Validate a decoded JSON object as a metadata document.

    Raises:
        EnrichmentError: If known fields have the wrong shape.
    """
    try:
        return MetadataDocument.model_validate(document)
    except pydantic.ValidationError as e:
        log.debug("metadata_schema_mismatch", locator=locator, errors=e.error_count())
        raise EnrichmentError(f"metadata does not match schema: {e.error_count()} error(s)", locator=locator) from e
