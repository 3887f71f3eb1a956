"""EVM chain access: JSON-RPC client, contract ABIs and log decoding."""

from nftmirror.services.chain.client import ChainClient, close_chain_client, get_chain_client
from nftmirror.services.chain.decoder import LogDecoder

__all__ = [
    "ChainClient",
    "LogDecoder",
    "close_chain_client",
    "get_chain_client",
]
