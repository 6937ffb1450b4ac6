"""Custom exception hierarchy for cratehub."""


class CrateHubError(Exception):
    """Base exception for all cratehub errors."""


class CrateNotFoundError(CrateHubError):
    """Raised when a crate id has no metadata record."""


class PermissionDeniedError(CrateHubError):
    """Raised when the caller does not own the crate it tries to modify."""


class ValidationError(CrateHubError):
    """Raised when a request violates the caller contract (bad payload, missing data)."""


class DependencyError(CrateHubError):
    """Raised on fatal collaborator failures (signing keys, store initialization)."""


class StorageError(CrateHubError):
    """Raised on blob store I/O failures that have no degraded fallback."""
