"""Chain-state projector."""

from nftmirror.services.projector.projector import (
    ChainStateProjector,
    EventProcessingResult,
    ProcessingStatus,
)
from nftmirror.services.projector.retry import run_optimistic

__all__ = [
    "ChainStateProjector",
    "EventProcessingResult",
    "ProcessingStatus",
    "run_optimistic",
]
