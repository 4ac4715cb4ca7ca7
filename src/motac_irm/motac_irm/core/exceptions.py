from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base exception for business rule violations."""

    error_code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules.

    ``errors`` maps each failing field to every message collected for it, so
    callers can show all problems at once.
    """

    error_code = "VALIDATION_FAILURE"
    http_status = 422

    def __init__(self, message: str, errors: Optional[dict[str, list[str]]] = None):
        self.errors = {k: list(v) for k, v in (errors or {}).items()}
        super().__init__(message, {"errors": self.errors})

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, {field: [message]})


class AuthenticationError(DomainError):
    """Raised when login credentials are invalid."""

    error_code = "AUTHENTICATION_FAILED"
    http_status = 401


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    error_code = "AUTHORIZATION_DENIED"
    http_status = 403

    def __init__(self, message: str = "You are not allowed to perform this action"):
        super().__init__(message)


class ConflictError(DomainError):
    """Raised when the current state does not permit the requested change."""

    error_code = "CONFLICT_STATE"
    http_status = 409


class ExternalServiceError(DomainError):
    """Raised when a downstream action (provisioning, file parsing) fails."""

    error_code = "EXTERNAL_FAILURE"
    http_status = 502


class NotFoundError(DomainError):
    """Raised when a referenced record no longer exists."""

    error_code = "NOT_FOUND"
    http_status = 404
