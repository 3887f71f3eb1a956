"""Projector tuning constants."""

from typing import Final

DEFAULT_MAX_ATTEMPTS: Final[int] = 5
DEFAULT_CONCURRENCY: Final[int] = 8

# Jittered backoff between read-compute-write attempts
RETRY_WAIT_MULTIPLIER_SECONDS: Final[float] = 0.01
RETRY_WAIT_MAX_SECONDS: Final[float] = 0.25
