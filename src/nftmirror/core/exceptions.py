"""NFT Mirror exception hierarchy.

This module defines the base exception class and specialized exceptions
for the error categories of the projector and its collaborators.
"""


class NftMirrorError(Exception):
    """Base exception for all NFT Mirror errors.

    All custom exceptions should inherit from this class to enable
    consistent error handling and logging.
    """

    pass


class DatabaseConnectionError(NftMirrorError):
    """Raised when the projection store is unreachable.

    This is the only fatal error of the ingestion path: losing the store
    halts ingestion instead of silently dropping events.

    Example:
        raise DatabaseConnectionError("Supabase: Client not connected")
    """

    pass


class ConfigurationError(NftMirrorError):
    """Raised when configuration is invalid or missing.

    Example:
        raise ConfigurationError("Missing required env var: NFT_CONTRACT_ADDRESS")
    """

    pass


class ValidationError(NftMirrorError):
    """Raised when data validation fails."""

    pass


class MalformedEventError(ValidationError):
    """Raised when an event record is missing required fields.

    The event is rejected without mutating any entity and is not retried.

    Attributes:
        event_name: Name of the offending event.

    Example:
        raise MalformedEventError("Transfer", "expected 3 arguments, got 2")
    """

    def __init__(self, event_name: str, message: str) -> None:
        self.event_name = event_name
        super().__init__(f"{event_name}: {message}")


class VersionConflictError(NftMirrorError):
    """Raised when a conditional write loses against a concurrent writer.

    Transient: recovered by re-reading and recomputing the transition.

    Attributes:
        entity: Entity kind ("asset" or "listing").
        key: Natural key of the entity.
        expected_version: Version the writer based its change on.
    """

    def __init__(self, entity: str, key: object, expected_version: int | None) -> None:
        self.entity = entity
        self.key = key
        self.expected_version = expected_version
        super().__init__(
            f"{entity} {key}: version conflict (expected {expected_version})"
        )


class ExhaustedRetriesError(NftMirrorError):
    """Raised when a version conflict outlives the retry bound.

    The event must be considered for redelivery, not discarded.

    Attributes:
        operation: Name of the read-compute-write cycle that gave up.
        attempts: Number of attempts made.
    """

    def __init__(self, operation: str, attempts: int) -> None:
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation}: gave up after {attempts} attempts")


class EnrichmentError(NftMirrorError):
    """Raised when token metadata cannot be resolved or fetched.

    Never fatal to the caller: the asset is persisted without metadata.

    Attributes:
        locator: Metadata URI that failed, if known.
    """

    def __init__(self, message: str, locator: str | None = None) -> None:
        self.locator = locator
        super().__init__(message)


class ExternalServiceError(NftMirrorError):
    """Raised when an external service call fails.

    Use this for HTTP gateway and JSON-RPC errors.

    Attributes:
        service: Name of the external service that failed.
        status_code: HTTP status code if available, None otherwise.

    Example:
        raise ExternalServiceError(service="ipfs", message="Not found", status_code=404)
    """

    def __init__(
        self,
        service: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class CircuitBreakerOpenError(NftMirrorError):
    """Raised when circuit breaker is open.

    Example:
        raise CircuitBreakerOpenError("Circuit is open for the IPFS gateway")
    """

    pass
