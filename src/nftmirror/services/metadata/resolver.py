"""Token URI resolution.

Maps the URI reported by `tokenURI(tokenId)` to something fetchable:

    ipfs://<cid>/<path>      -> {ipfs_gateway}/ipfs/<cid>/<path>
    ipfs://ipfs/<cid>        -> {ipfs_gateway}/ipfs/<cid>
    ar://<tx>                -> {arweave_gateway}/<tx>
    data:application/json... -> decoded inline, no fetch
    http(s)://...            -> unchanged
"""

import base64
import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote_to_bytes

from nftmirror.constants.metadata import (
    ARWEAVE_SCHEME,
    DATA_JSON_PREFIX,
    IPFS_SCHEME,
    MAX_METADATA_BYTES,
)
from nftmirror.core.exceptions import EnrichmentError


@dataclass(frozen=True)
class ResolvedLocator:
    """Where a metadata document lives.

    Exactly one of `url` (fetch over HTTP) or `inline` (already decoded
    document) is set.
    """

    uri: str
    url: str | None = None
    inline: dict[str, Any] | None = None


def resolve_locator(uri: str, ipfs_gateway: str, arweave_gateway: str) -> ResolvedLocator:
    """Resolve a token URI into an HTTP URL or an inline document.

    Args:
        uri: Token URI as reported by the contract.
        ipfs_gateway: IPFS HTTP gateway base URL.
        arweave_gateway: Arweave HTTP gateway base URL.

    Returns:
        ResolvedLocator for the URI.

    Raises:
        EnrichmentError: If the URI is empty, uses an unsupported scheme,
            or carries an undecodable inline document.
    """
    uri = uri.strip()
    if not uri:
        raise EnrichmentError("empty token URI", locator=uri)

    lowered = uri.lower()
    if lowered.startswith(IPFS_SCHEME):
        path = uri[len(IPFS_SCHEME):]
        if path.startswith("ipfs/"):
            path = path[len("ipfs/"):]
        return ResolvedLocator(uri, url=f"{ipfs_gateway.rstrip('/')}/ipfs/{path}")

    if lowered.startswith(ARWEAVE_SCHEME):
        path = uri[len(ARWEAVE_SCHEME):]
        return ResolvedLocator(uri, url=f"{arweave_gateway.rstrip('/')}/{path}")

    if lowered.startswith(DATA_JSON_PREFIX):
        return ResolvedLocator(uri, inline=decode_data_uri(uri))

    if lowered.startswith(("http://", "https://")):
        return ResolvedLocator(uri, url=uri)

    raise EnrichmentError(f"unsupported token URI scheme: {uri[:64]}", locator=uri)


def decode_data_uri(uri: str) -> dict[str, Any]:
    """Decode a `data:application/json[;base64],...` URI into a JSON object.

    Raises:
        EnrichmentError: If the payload is not a JSON object.
    """
    header, sep, payload = uri.partition(",")
    if not sep:
        raise EnrichmentError("data URI has no payload", locator=uri[:64])

    try:
        if header.lower().endswith(";base64"):
            raw = base64.b64decode(payload, validate=True)
        else:
            raw = unquote_to_bytes(payload)
    except ValueError as e:
        raise EnrichmentError(f"invalid data URI encoding: {e}", locator=uri[:64]) from e

    return parse_document_bytes(raw, locator=uri[:64])


def parse_document_bytes(raw: bytes, locator: str) -> dict[str, Any]:
    """Parse a metadata payload, enforcing the size bound.

    Raises:
        EnrichmentError: If the payload is too large or not a JSON object.
    """
    if len(raw) > MAX_METADATA_BYTES:
        raise EnrichmentError(f"metadata larger than {MAX_METADATA_BYTES} bytes", locator=locator)

    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise EnrichmentError(f"metadata is not valid JSON: {e}", locator=locator) from e

    if not isinstance(document, dict):
        raise EnrichmentError("metadata is not a JSON object", locator=locator)
    return document
