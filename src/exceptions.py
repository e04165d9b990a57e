"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class BusinessRuleException(AppException):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


class InvalidTransitionException(BusinessRuleException):
    """Raised when the status registry does not allow ``from -> to``."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, allowed: list[str] | None = None) -> None:
        super().__init__(
            f"Invalid status transition: {from_status} → {to_status}",
            details=[{"from": from_status, "to": to_status, "allowed": allowed or []}],
        )
        self.from_status = from_status
        self.to_status = to_status


class PersistenceException(AppException):
    """The underlying store rejected or could not complete a write."""

    code = "PERSISTENCE_FAILURE"
    status_code = 503

