"""EVM JSON-RPC client (web3.py, async).

Wraps the few calls the ingestion worker and the metadata enricher need.
Every RPC failure surfaces as `ExternalServiceError`, and repeated failures
open a circuit breaker shared by all calls.
"""

from collections import OrderedDict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3

from nftmirror.config.settings import get_settings
from nftmirror.constants.chain import BLOCK_TIMESTAMP_CACHE_SIZE
from nftmirror.core.exceptions import ExternalServiceError
from nftmirror.services.base import CircuitBreaker
from nftmirror.services.chain.abi import ERC721_ABI

log = structlog.get_logger(__name__)

T = TypeVar("T")


class ChainClient:
    """Async web3 client with a block timestamp cache.

    Example:
        client = ChainClient("https://rpc.example.org")
        head = await client.get_block_number()
        logs = await client.get_logs([registry, marketplace], head - 100, head)
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 10.0,
        cache_size: int = BLOCK_TIMESTAMP_CACHE_SIZE,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_cooldown: int = 30,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """Initialize chain client.

        Args:
            rpc_url: HTTP JSON-RPC endpoint.
            timeout: Per-request timeout in seconds.
            cache_size: Block timestamps kept in memory.
            circuit_breaker_threshold: Failures before circuit opens.
            circuit_breaker_cooldown: Seconds before half-open.
            w3: Preconfigured AsyncWeb3 instance (tests).
        """
        self.rpc_url = rpc_url
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
        )
        self.cache_size = cache_size
        self._timestamps: OrderedDict[int, datetime] = OrderedDict()
        self._circuit_breaker = CircuitBreaker(
            service="rpc",
            failure_threshold=circuit_breaker_threshold,
            cooldown_seconds=circuit_breaker_cooldown,
        )

    async def _call(self, method: str, request: Callable[[], Awaitable[T]]) -> T:
        self._circuit_breaker.raise_if_open()
        try:
            result = await request()
        except Exception as e:
            self._circuit_breaker.record_failure()
            log.warning("rpc_call_failed", method=method, error=repr(e))
            raise ExternalServiceError(service="rpc", message=f"{method}: {e}") from e
        self._circuit_breaker.record_success()
        return result

    async def get_block_number(self) -> int:
        """Latest block number."""
        return int(await self._call("eth_blockNumber", lambda: self.w3.eth.block_number))

    async def get_logs(
        self, addresses: list[str], from_block: int, to_block: int
    ) -> list[dict[str, Any]]:
        """Fetch logs emitted by `addresses` in an inclusive block range.

        Returns:
            Logs sorted by (blockNumber, logIndex).
        """
        logs = await self._call(
            "eth_getLogs",
            lambda: self.w3.eth.get_logs(
                {
                    "fromBlock": from_block,
                    "toBlock": to_block,
                    "address": [AsyncWeb3.to_checksum_address(a) for a in addresses],
                }
            ),
        )
        log.debug("logs_fetched", from_block=from_block, to_block=to_block, count=len(logs))
        return sorted(logs, key=lambda entry: (entry["blockNumber"], entry["logIndex"]))

    async def get_block_timestamp(self, block_number: int) -> datetime:
        """Timestamp of a block, cached (LRU)."""
        cached = self._timestamps.get(block_number)
        if cached is not None:
            self._timestamps.move_to_end(block_number)
            return cached

        block = await self._call(
            "eth_getBlockByNumber", lambda: self.w3.eth.get_block(block_number)
        )
        timestamp = datetime.fromtimestamp(int(block["timestamp"]), tz=UTC)

        while len(self._timestamps) >= self.cache_size:
            self._timestamps.popitem(last=False)
        self._timestamps[block_number] = timestamp
        return timestamp

    async def token_uri(self, contract_address: str, token_id: int) -> str:
        """Read `tokenURI(tokenId)` from an ERC-721 contract."""
        contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address), abi=ERC721_ABI
        )
        return str(await self._call("tokenURI", contract.functions.tokenURI(token_id).call))

    async def is_connected(self) -> bool:
        return bool(await self.w3.is_connected())

    async def close(self) -> None:
        """Release the provider's HTTP session."""
        provider = self.w3.provider
        if isinstance(provider, AsyncHTTPProvider):
            await provider.disconnect()
        log.debug("chain_client_closed", rpc_url=self.rpc_url)


# Singleton instance
_chain_client: ChainClient | None = None


def get_chain_client() -> ChainClient:
    """Get or create the chain client singleton."""
    global _chain_client

    if _chain_client is None:
        settings = get_settings()
        _chain_client = ChainClient(
            rpc_url=settings.rpc_url,
            circuit_breaker_threshold=settings.circuit_breaker_threshold,
            circuit_breaker_cooldown=settings.circuit_breaker_cooldown,
        )

    return _chain_client


async def close_chain_client() -> None:
    """Close and drop the chain client singleton."""
    global _chain_client
    if _chain_client is not None:
        await _chain_client.close()
        _chain_client = None
