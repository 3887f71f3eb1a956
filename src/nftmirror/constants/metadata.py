"""Token metadata fetching constants."""

from typing import Final

IPFS_SCHEME: Final[str] = "ipfs://"
ARWEAVE_SCHEME: Final[str] = "ar://"
DATA_JSON_PREFIX: Final[str] = "data:application/json"

# Upper bound on metadata documents we are willing to parse
MAX_METADATA_BYTES: Final[int] = 1_000_000
