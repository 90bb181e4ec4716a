"""Error taxonomy for deployment orchestration.

Errors raised synchronously by an orchestration operation carry a ``kind``
and an HTTP ``status_code`` so the API layer can render them uniformly.
``ProviderError`` and ``NotificationError`` never reach the caller: the first
is recorded on the failed Deployment, the second is only logged.
"""

from typing import Optional


class OrchestrationError(Exception):
    """Base class for errors surfaced to the caller of an orchestration operation."""

    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(OrchestrationError):
    """Missing required field, or an operation illegal for the record's state."""

    kind = "validation_error"
    status_code = 422


class NotFoundError(OrchestrationError):
    kind = "not_found"
    status_code = 404


class ConflictError(OrchestrationError):
    """Project already has an attempt in flight."""

    kind = "conflict"
    status_code = 409


class StoreError(OrchestrationError):
    """Read or write against the persistent store failed."""

    kind = "internal_error"
    status_code = 500


class ProviderError(Exception):
    """Provider rejected the deployment or could not be reached.

    ``raw_response`` holds the diagnostic payload that ends up in the
    Deployment's build logs.
    """

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw_response = raw_response

    @property
    def build_logs(self) -> str:
        return self.raw_response or self.message


class NotificationError(Exception):
    """A notification channel failed to deliver."""
