"""Core exceptions for Pulumi backend operations."""


class PulumiBackendError(Exception):
    """Base exception for Pulumi backend operations.

    ``hint`` carries an actionable suggestion shown next to the error.
    """

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.hint = hint


class InvalidLocationError(PulumiBackendError, ValueError):
    """Backend location string could not be parsed."""


class ConfigurationError(PulumiBackendError):
    """Configuration validation or loading failed."""


class PrerequisiteError(PulumiBackendError):
    """A required tool or credential is missing."""


class TransferStateError(PulumiBackendError):
    """Transfer engine operation called out of order."""
