"""Optimistic concurrency retry for read-compute-write cycles."""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)
from tenacity.wait import wait_base

from nftmirror.constants.projection import (
    DEFAULT_MAX_ATTEMPTS,
    RETRY_WAIT_MAX_SECONDS,
    RETRY_WAIT_MULTIPLIER_SECONDS,
)
from nftmirror.core.exceptions import ExhaustedRetriesError, VersionConflictError

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_WAIT: wait_base = wait_random_exponential(
    multiplier=RETRY_WAIT_MULTIPLIER_SECONDS,
    max=RETRY_WAIT_MAX_SECONDS,
)


def _log_conflict(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.debug(
            "projection_conflict_retry",
            operation=operation,
            attempt=retry_state.attempt_number,
            error=str(error),
        )

    return before_sleep


async def run_optimistic(
    cycle: Callable[[], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    wait: wait_base | None = None,
) -> T:
    """Run a read-compute-write cycle until its conditional write lands.

    The cycle must re-read everything it depends on each time it runs;
    only `VersionConflictError` triggers a retry, any other error
    propagates immediately.

    Args:
        cycle: Coroutine factory performing one full read-compute-write.
        operation: Human-readable name used in logs and errors.
        max_attempts: Upper bound on the number of cycles.
        wait: Tenacity wait strategy between cycles.

    Returns:
        Whatever the successful cycle returned.

    Raises:
        ExhaustedRetriesError: If every attempt hit a version conflict.
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait or DEFAULT_WAIT,
            retry=retry_if_exception_type(VersionConflictError),
            before_sleep=_log_conflict(operation),
        ):
            with attempt:
                return await cycle()
    except RetryError as e:
        log.error(
            "projection_retries_exhausted",
            operation=operation,
            attempts=max_attempts,
        )
        raise ExhaustedRetriesError(operation, max_attempts) from e.last_attempt.exception()

    raise AssertionError("unreachable")  # pragma: no cover
