from __future__ import annotations


class CloudStreamError(Exception):
    """Base class for errors raised by the asset pipeline."""


class ValidationError(CloudStreamError, ValueError):
    """A submitted payload or metadata value is invalid."""


class StateError(CloudStreamError):
    """An operation is not allowed in the asset's current status."""


class EnrichmentError(CloudStreamError):
    """The metadata enrichment collaborator failed or returned garbage."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts
