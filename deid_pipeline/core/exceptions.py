# deid_pipeline/core/exceptions.py

"""Custom exception hierarchy for the deidentification pipeline.

This module defines the specific error types used throughout the application
to differentiate between configuration, shaping, remote call and resource
errors.
"""

from typing import Optional


class DeidentifyError(Exception):
    """Base exception for all application-specific errors."""

    pass


class ConfigurationError(DeidentifyError):
    """Raised when pipeline configuration or template loading fails."""

    pass


class InitializationError(DeidentifyError):
    """Raised when the engine or external resources fail to initialize."""

    pass


class ValidationError(DeidentifyError):
    """Raised when an input record is unusable (e.g., missing content)."""

    pass


class ShapingError(ValidationError):
    """Raised when a delimited record does not match the active header set."""

    def __init__(self, key: str, expected: int, actual: int) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Record from '{key}' has {actual} fields but {expected} headers are configured"
        )


class RemoteCallError(DeidentifyError):
    """Raised when the deidentify call for a batch fails.

    Attributes:
        status: Symbolic status (see RemoteStatus), if known
        status_code: HTTP status code, if the failure came from HTTP
    """

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.status = status
        self.status_code = status_code
        super().__init__(message)


class ResourceError(DeidentifyError):
    """Raised when a service client cannot be acquired, used or released."""

    pass
