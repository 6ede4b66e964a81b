from __future__ import annotations

from typing import Any


class InvalidRequestError(Exception):
    """Raised for malformed input: missing fields, bad sort/pagination, bad date ranges."""

    def __init__(self, message: str, *, details: Any = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(Exception):
    def __init__(self, resource: str, identifier: object) -> None:
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class ConflictError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InfrastructureError(Exception):
    """Record store unavailable or timed out. Callers may retry."""

    retryable = True

    def __init__(self, operation: str, cause: str | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Record store unavailable during '{operation}'")
