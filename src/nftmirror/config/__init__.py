"""Configuration module for NFT Mirror.

Usage:
    from nftmirror.config import get_settings

    settings = get_settings()  # Cached singleton
    print(settings.rpc_url)

Note:
    There is no module-level `settings` instance because that would fail
    on import if required env vars aren't set. Use `get_settings()` to get
    the cached instance at runtime.
"""

from nftmirror.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
