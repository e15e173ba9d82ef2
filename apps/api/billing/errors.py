"""Billing core error types."""


class PortalError(RuntimeError):
    """Base error for portal domain operations."""


class SnapshotFormatError(PortalError):
    """Raised when an imported or persisted snapshot is not well formed."""
