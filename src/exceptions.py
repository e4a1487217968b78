"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list. ``context`` is a
    shortcut for details of the form ``{"field": key, "message": value}`` so
    that the actor learns which scope and status the failure refers to.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = list(details or [])
        for key, value in (context or {}).items():
            if value is None:
                continue
            self.details.append({"field": key, "message": str(getattr(value, "value", value))})


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class BusinessRuleException(AppException):
    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422


class InvalidStateTransitionException(ConflictException):
    code = "INVALID_STATE_TRANSITION"


class DuplicateActiveSubmissionException(ConflictException):
    code = "DUPLICATE_ACTIVE_SUBMISSION"


class ConcurrentModificationException(ConflictException):
    code = "CONCURRENT_MODIFICATION"


class DesignApprovalRequiredException(BusinessRuleException):
    code = "DESIGN_APPROVAL_REQUIRED"


class PurchaseNotEligibleException(BusinessRuleException):
    code = "PURCHASE_NOT_ELIGIBLE"


class RateLimitException(AppException):
    code = "RATE_LIMITED"
    status_code = 429
