"""NFT Mirror: asset and listing projections of an NFT registry and marketplace."""

__version__ = "0.1.0"
