"""Service error hierarchy for node RPC, IPFS and ingestion operations.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- TransientError: Retryable errors (network, timeouts, node warming up)
- PermanentError: Non-retryable errors (authentication, configuration)
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


class TransientError(ServiceError):
    """Transient error that may succeed on retry.

    Examples:
    - Node unreachable or connection reset
    - Request timeouts
    - Service unavailable (503)
    """

    pass


class PermanentError(ServiceError):
    """Permanent error that will not succeed on retry.

    Examples:
    - Authentication failures (401, 403)
    - Configuration errors
    """

    pass


# Node RPC errors
class RPCError(ServiceError):
    """Base exception for JSON-RPC errors."""

    def __init__(self, message: str, method: str | None = None):
        self.method = method
        super().__init__(f"RPC {method} failed: {message}" if method else message)


class RPCConnectionError(RPCError, TransientError):
    """Node unreachable, connection dropped or request timed out."""

    pass


class RPCAuthError(RPCError, PermanentError):
    """Node rejected the RPC credentials (401, 403)."""

    pass


class RPCProtocolError(RPCError, TransientError):
    """Non-success HTTP status without a JSON-RPC body, or malformed response."""

    pass


class RPCResponseError(RPCError):
    """Node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, method: str | None = None):
        self.code = code
        super().__init__(f"[{code}] {message}" if code is not None else message, method)


# IPFS errors
class IPFSFetchError(TransientError):
    """A gateway failed to return a JSON metadata document."""

    pass


# Ingestion errors
class SyncError(ServiceError):
    """Base exception for block ingestion errors."""

    pass


class BlockFetchError(SyncError, TransientError):
    """Node returned no block for a height that should exist."""

    pass


class SyncHaltedError(SyncError, PermanentError):
    """Outer retry budget exhausted; the daemon stops (fail-stop)."""

    pass
