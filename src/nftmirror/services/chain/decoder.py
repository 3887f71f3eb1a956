"""Raw log decoding.

Turns `eth_getLogs` entries from the registry and marketplace contracts
into `EventRecord`s. Logs are matched on (emitter, topic0) and decoded
with the matching contract event; arguments are laid out in ABI order.
"""

from datetime import datetime
from typing import Any

import structlog
from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import LogTopicError, MismatchedABI

from nftmirror.data.models.event import EventRecord
from nftmirror.services.chain.abi import (
    ERC721_ABI,
    MARKETPLACE_ABI,
    event_abis,
    event_signature,
)

log = structlog.get_logger(__name__)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x"))
    return bytes(value)


def _as_hex(value: Any) -> str | None:
    if value is None:
        return None
    return "0x" + _as_bytes(value).hex()


class LogDecoder:
    """Decodes logs of a fixed set of contracts.

    Attributes:
        contracts: Emitter address (lowercase) -> contract ABI.

    Example:
        decoder = LogDecoder.for_contracts(registry, marketplace)
        records = decoder.decode_many(logs, timestamps)
    """

    def __init__(self, contracts: dict[str, list[dict[str, Any]]]) -> None:
        self.contracts = {address.lower(): abi for address, abi in contracts.items()}
        self._w3 = Web3()
        self._events: dict[tuple[str, bytes], tuple[Any, list[str]]] = {}

        for address, abi in self.contracts.items():
            contract = self._w3.eth.contract(abi=abi)
            for event_abi in event_abis(abi):
                topic = bytes(Web3.keccak(text=event_signature(event_abi)))
                event = getattr(contract.events, event_abi["name"])()
                names = [arg["name"] for arg in event_abi["inputs"]]
                self._events[(address, topic)] = (event, names)

    @classmethod
    def for_contracts(cls, nft_contract: str, marketplace: str) -> "LogDecoder":
        """Decoder for one registry and one marketplace contract."""
        return cls({nft_contract: ERC721_ABI, marketplace: MARKETPLACE_ABI})

    @property
    def addresses(self) -> list[str]:
        return list(self.contracts)

    def decode(
        self, raw: dict[str, Any], block_timestamp: datetime | None = None
    ) -> EventRecord | None:
        """Decode one log.

        Returns:
            EventRecord, or None for logs of unknown events or that do not
            match their event ABI.
        """
        address = str(raw.get("address", "")).lower()
        topics = raw.get("topics") or []
        if not topics:
            return None

        entry = self._events.get((address, _as_bytes(topics[0])))
        if entry is None:
            log.debug("log_event_not_tracked", address=address)
            return None

        event, names = entry
        normalized = {
            **raw,
            "topics": [_as_bytes(topic) for topic in topics],
            "data": _as_bytes(raw.get("data") or b""),
        }
        try:
            decoded = event.process_log(normalized)
        except (MismatchedABI, LogTopicError, DecodingError, KeyError, ValueError) as e:
            log.warning(
                "log_decode_failed",
                address=address,
                block=raw.get("blockNumber"),
                log_index=raw.get("logIndex"),
                error=repr(e),
            )
            return None

        return EventRecord(
            event_name=decoded["event"],
            args=[decoded["args"][name] for name in names],
            contract_address=address,
            block_number=int(raw["blockNumber"]),
            log_index=int(raw.get("logIndex") or 0),
            transaction_hash=_as_hex(raw.get("transactionHash")),
            block_timestamp=block_timestamp,
        )

    def decode_many(
        self,
        logs: list[dict[str, Any]],
        timestamps: dict[int, datetime] | None = None,
    ) -> list[EventRecord]:
        """Decode logs, dropping the ones `decode` skips, in block order."""
        timestamps = timestamps or {}
        records = [
            record
            for raw in logs
            if (record := self.decode(raw, timestamps.get(int(raw["blockNumber"])))) is not None
        ]
        return sorted(records, key=lambda record: record.order)
