from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for errors raised by the request and ticket engines."""

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    """Input is missing, malformed or carries an unknown enum value."""

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()))
        msg = first.get("msg", "invalid input")
        return cls(f"{loc}: {msg}" if loc else msg, details=errors)


class NotFoundError(ServiceError):
    pass


class ConflictError(ServiceError):
    pass


class DispatchWarning(Warning):
    """Notification delivery failed. Logged only; never raised to callers."""
