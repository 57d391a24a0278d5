"""Exceptions raised by the spatial query layer."""

from __future__ import annotations


class SpatialQueryError(Exception):
    """Base class for feature-service query failures."""

    def __init__(self, message: str, endpoint: str = "") -> None:
        super().__init__(message)
        self.endpoint = endpoint


class EndpointNotConfiguredError(SpatialQueryError):
    """The layer URL is empty; nothing was sent."""


class ServiceError(SpatialQueryError):
    """The service answered 200 but embedded an ``error`` object."""

    def __init__(
        self,
        message: str,
        endpoint: str = "",
        code: int | None = None,
        details: list[str] | None = None,
    ) -> None:
        super().__init__(message, endpoint)
        self.code = code
        self.details = details or []


class RetriesExhaustedError(SpatialQueryError):
    """Every attempt failed. The last underlying error is ``__cause__``."""

    def __init__(self, endpoint: str, attempts: int) -> None:
        super().__init__(
            f"Query to {endpoint} failed after {attempts} attempts", endpoint
        )
        self.attempts = attempts


class InvalidParcelNumberError(ValueError):
    """Identifier does not contain exactly ten digits."""
