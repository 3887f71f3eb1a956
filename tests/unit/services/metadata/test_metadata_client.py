"""Unit tests for MetadataClient.

HTTP is mocked at the httpx transport level using respx.
"""

import pytest
import respx
from httpx import ConnectError, Response

from nftmirror.core.exceptions import EnrichmentError
from nftmirror.services.metadata.client import MetadataClient, to_metadata_document

URL = "https://ipfs.io/ipfs/QmHash/7.json"


@pytest.fixture
def metadata_client():
    """MetadataClient that opens its circuit after two failures."""
    return MetadataClient(timeout=1.0, circuit_breaker_threshold=2)


@pytest.mark.asyncio
@respx.mock
async def test_fetch_parses_document(metadata_client):
    respx.get(URL).mock(
        return_value=Response(
            200,
            json={
                "name": "Seven",
                "image": "ipfs://QmImage",
                "attributes": [{"trait_type": "eyes", "value": "red"}],
                "animation_url": "ipfs://QmAnim",
            },
        )
    )

    document = await metadata_client.fetch(URL)

    assert document.name == "Seven"
    assert document.attributes[0].value == "red"
    # Unknown keys survive
    assert document.model_dump()["animation_url"] == "ipfs://QmAnim"

    await metadata_client.close()


@pytest.mark.asyncio
@respx.mock
async def test_not_found_is_enrichment_error(metadata_client):
    route = respx.get(URL).mock(return_value=Response(404))

    with pytest.raises(EnrichmentError) as exc_info:
        await metadata_client.fetch(URL)

    assert exc_info.value.locator == URL
    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_server_error_is_not_retried(metadata_client):
    route = respx.get(URL).mock(return_value=Response(502))

    with pytest.raises(EnrichmentError):
        await metadata_client.fetch(URL)

    assert route.call_count == 1


@pytest.mark.asyncio
@respx.mock
async def test_open_circuit_is_enrichment_error(metadata_client):
    route = respx.get(URL).mock(side_effect=ConnectError("refused"))

    for _ in range(2):
        with pytest.raises(EnrichmentError):
            await metadata_client.fetch(URL)

    with pytest.raises(EnrichmentError, match="circuit open"):
        await metadata_client.fetch(URL)
    assert route.call_count == 2


@pytest.mark.asyncio
@respx.mock
async def test_non_json_body(metadata_client):
    respx.get(URL).mock(return_value=Response(200, text="<html>gateway timeout</html>"))

    with pytest.raises(EnrichmentError, match="not valid JSON"):
        await metadata_client.fetch(URL)


def test_schema_mismatch():
    with pytest.raises(EnrichmentError, match="does not match schema"):
        to_metadata_document({"name": ["not", "a", "string"]}, "x")
