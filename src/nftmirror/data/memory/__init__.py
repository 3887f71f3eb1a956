"""In-memory projection store."""

from nftmirror.data.memory.store import InMemoryProjectionStore

__all__ = ["InMemoryProjectionStore"]
