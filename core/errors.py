"""
Error taxonomy for the relay pipeline.

ValidationError      -> 400, no side effects.
ProviderError        -> 500 before streaming; silent truncation once frames are out.
ArtifactStoreError   -> 500, upload could not be persisted (not retried).
ResourceCleanupError -> logged by the artifact store, never surfaced.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for pipeline errors."""


class ValidationError(RelayError):
    """Request is missing a required part (upload, prompt) or is malformed."""


class ProviderError(RelayError):
    """An external provider call failed (non-2xx or transport failure)."""

    def __init__(self, message: str, provider: str = "", stage: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.provider = provider
        self.stage = stage
        self.cause = cause


class ArtifactStoreError(RelayError):
    """Uploaded audio could not be written to temporary storage."""


class ResourceCleanupError(RelayError):
    """Temporary artifact could not be removed."""
